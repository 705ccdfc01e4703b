# callrelay/hub.py
# The hub owns all relay state and is the only code that mutates it.
# Responsibilities include:
# - Holding the connection registry, the call sessions and the presence broadcaster.
# - Serializing every event (connects, inbound frames, disconnects, liveness ticks)
#   through one asyncio queue read by a single consumer task.
# - Routing inbound frames: parse, validate, answer errors, dispatch to handlers.
# - Registering and unregistering connections, with presence notifications.
# - Evicting dead connections, probing live ones, and notifying everyone on shutdown.

import asyncio
import collections
import logging
import secrets
import time

from callrelay import config
from callrelay import protocol
from callrelay.handlers import HANDLERS
from callrelay.presence import PresenceBroadcaster
from callrelay.registry import Registry
from callrelay.rooms import CallSessions


# --- Events ---
# Per-connection tasks and timers never touch hub state directly; they submit these.
Connected = collections.namedtuple("Connected", ["channel"])
Inbound = collections.namedtuple("Inbound", ["channel", "raw"])
Disconnected = collections.namedtuple("Disconnected", ["channel"])
Sweep = collections.namedtuple("Sweep", [])
Probe = collections.namedtuple("Probe", [])


def anonymous_id():
    """Identifier for a client that connected without one: epoch ms plus a random suffix."""
    return f"anonymous_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class Hub:
    """
    Relay state plus the single consumer that applies events to it.

    Args:
        resolver (AudienceResolver, optional): Picks who hears presence updates.
            Defaults to everyone else who is connected.
    """

    def __init__(self, resolver=None):
        self.registry = Registry()
        self.sessions = CallSessions()
        self.presence = PresenceBroadcaster(self.registry, resolver)
        self.accepting = True
        # Every connection that has not disconnected yet, including superseded ones
        # that are no longer in the registry.
        self._channels = set()
        self._queue = asyncio.Queue()

    @property
    def connection_count(self):
        return len(self.registry)

    # --- Event Queue ---

    def submit(self, event):
        self._queue.put_nowait(event)

    async def run(self):
        """Consumes events forever, one at a time."""
        while True:
            event = await self._queue.get()
            try:
                self.process(event)
            except Exception:
                logging.exception(f"Unexpected error processing {type(event).__name__} event")
            finally:
                self._queue.task_done()

    async def flush(self):
        """Waits until every submitted event has been processed."""
        await self._queue.join()

    def process(self, event):
        if isinstance(event, Inbound):
            self.dispatch(event.channel, event.raw)
        elif isinstance(event, Connected):
            self.connect(event.channel)
        elif isinstance(event, Disconnected):
            self.disconnect(event.channel)
        elif isinstance(event, Sweep):
            self.sweep()
        elif isinstance(event, Probe):
            self.probe()
        else:
            raise TypeError(f"Unknown hub event: {event!r}")

    # --- Connection Lifecycle ---

    def connect(self, channel):
        """
        Registers a freshly handshaken connection, welcomes it and announces it.

        If the identifier was already registered the old connection is replaced. It is
        only closed when CLOSE_SUPERSEDED_CONNECTIONS is set; otherwise both stay open
        and only the new one receives frames addressed to the identifier.
        """
        participant_id = channel.participant_id
        if not self.accepting:
            logging.info(f"Refusing '{participant_id}': server is shutting down.")
            channel.close(1001, "Server shutting down")
            return

        self._channels.add(channel)
        superseded = self.registry.register(participant_id, channel)
        if superseded is not None:
            logging.warning(f"Identifier '{participant_id}' reconnected; replacing its previous connection {superseded.remote_address}.")
            if config.CLOSE_SUPERSEDED_CONNECTIONS and superseded.is_open:
                superseded.close(4000, "Superseded by a newer connection")
        logging.info(f"Participant '{participant_id}' connected from {channel.remote_address} ({len(self.registry)} online)")

        channel.send(protocol.frame(
            "welcome",
            userId=participant_id,
            message="Connected to signaling server",
            totalConnections=len(self.registry),
        ))
        self.presence.broadcast_status(participant_id, "online")

    def disconnect(self, channel):
        """
        Unregisters a closed connection, clears its call room and announces it offline.
        A superseded connection closing leaves the newer registration alone.
        """
        participant_id = channel.participant_id
        self._channels.discard(channel)
        if not self.registry.remove(participant_id, channel):
            logging.info(f"Connection {channel.remote_address} for '{participant_id}' closed; it was no longer registered.")
            return

        cleared = self.sessions.leave(participant_id, include_peer=config.CLEAR_PEER_ROOM_ON_DISCONNECT)
        if config.DEBUG and cleared:
            logging.info(f"Cleared room membership of {cleared} after '{participant_id}' disconnected")
        logging.info(f"Participant '{participant_id}' disconnected ({len(self.registry)} online)")

        if self.accepting:
            self._announce_offline(participant_id)

    def _announce_offline(self, participant_id):
        """Fans out the offline status change followed by a user-offline notice."""
        self.presence.broadcast_status(participant_id, "offline")
        self.presence.notify(participant_id, protocol.frame(
            "user-offline",
            userId=participant_id,
        ))

    # --- Message Routing ---

    def dispatch(self, sender, raw):
        """
        Parses one inbound frame from a connection and runs the handler for its type.
        Protocol errors are answered with an error frame; nothing raised here reaches
        the connection, which stays open.

        Args:
            sender (Channel): The connection the frame arrived on.
            raw (str | bytes): The frame as received.
        """
        sender.mark_alive()
        if config.DEBUG:
            logging.info(f"Raw message received from '{sender.participant_id}': {raw!r}")

        try:
            message = protocol.parse(raw)
        except protocol.UnrecognizedType as e:
            if config.REPLY_TO_UNKNOWN_TYPES:
                logging.warning(f"Unrecognized message type '{e.message_type}' from '{sender.participant_id}'.")
                sender.send(protocol.error_frame(str(e), messageType=e.message_type))
            else:
                logging.warning(f"Unrecognized message type '{e.message_type}' from '{sender.participant_id}'. Ignoring.")
            return
        except protocol.MalformedMessage as e:
            logging.warning(f"Malformed message from '{sender.participant_id}': {e}")
            sender.send(protocol.error_frame(str(e)))
            return

        message_type = message["type"]
        if config.DEBUG:
            logging.info(f"Message from '{sender.participant_id}': {message_type}")
        try:
            HANDLERS[message_type](self, sender, message)
        except Exception:
            logging.exception(f"Unexpected error handling '{message_type}' from '{sender.participant_id}'")
            sender.send(protocol.error_frame("Internal error while handling message", messageType=message_type))

    # --- Liveness ---

    def sweep(self):
        """
        Evicts every registry entry whose connection is no longer open.
        Evicted participants are announced offline like a disconnect; a Disconnected
        event queued behind the sweep finds the entry gone and announces nothing.

        Returns:
            list[str]: The evicted identifiers.
        """
        evicted = []
        for participant_id, channel in self.registry.items():
            if channel.is_open:
                continue
            logging.info(f"Removing dead connection: '{participant_id}'")
            self.registry.remove(participant_id, channel)
            self._channels.discard(channel)
            self.sessions.leave(participant_id, include_peer=config.CLEAR_PEER_ROOM_ON_DISCONNECT)
            evicted.append(participant_id)
            if self.accepting:
                self._announce_offline(participant_id)
        return evicted

    def probe(self):
        """Sends a keep-alive ping to every open registered connection."""
        channels = self.registry.open_channels()
        for channel in channels:
            channel.probe(config.PING_TIMEOUT)
        if config.DEBUG:
            logging.info(f"Sent keep-alive ping to {len(channels)} connection(s)")
        return len(channels)

    # --- Shutdown ---

    def shutdown(self):
        """
        Stops accepting connections, sends every open connection a server-shutdown
        notice and closes it normally.

        Returns:
            list[Channel]: The connections that were notified and closed.
        """
        self.accepting = False
        notice = protocol.frame("server-shutdown", message="Server is restarting")
        channels = [channel for channel in self._channels if channel.is_open]
        for channel in channels:
            channel.send(notice)
            channel.close(1000, "Server shutting down")
        logging.info(f"Sent shutdown notice to {len(channels)} connection(s)")
        return channels

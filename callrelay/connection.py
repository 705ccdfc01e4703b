# callrelay/connection.py
# The live channel to one participant.
# A Channel wraps a websockets server connection and adds what the relay tracks about it:
# the participant identifier, when it connected, and when it last showed signs of life.
# Sends, closes and keep-alive probes are fire-and-forget: they are scheduled as tasks
# on the event loop so hub code never awaits I/O, and run in the order they were scheduled.

import asyncio
import json
import logging
import time

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from callrelay import config


class Channel:
    """
    One registered WebSocket connection.

    Attributes:
        websocket: The underlying websockets ServerConnection.
        participant_id (str): The identifier this connection registered under.
        connected_at (float): Wall-clock time of the handshake (epoch seconds).
        last_seen (float): Monotonic time of the last inbound frame or pong.
    """

    def __init__(self, websocket, participant_id):
        self.websocket = websocket
        self.participant_id = participant_id
        self.connected_at = time.time()
        self.last_seen = time.monotonic()
        self._pending = set()

    def __repr__(self):
        return f"<Channel {self.participant_id!r} {self.remote_address}>"

    @property
    def remote_address(self):
        return getattr(self.websocket, "remote_address", None)

    @property
    def is_open(self):
        """True while the transport reports the connection as OPEN."""
        return self.websocket.state is State.OPEN

    def mark_alive(self):
        self.last_seen = time.monotonic()

    # --- Fire-and-forget Operations ---

    def send(self, message):
        """
        Serializes a frame and schedules it for delivery.

        Args:
            message (dict): The outbound frame, already stamped by protocol.frame().
        """
        text = json.dumps(message)
        if config.DEBUG:
            logging.info(f"Sending to '{self.participant_id}' ({self.remote_address}): {text}")
        self._schedule(self._send(text))

    def close(self, code=1000, reason=""):
        self._schedule(self._close(code, reason))

    def probe(self, timeout):
        """Sends a keep-alive ping; the matching pong refreshes last_seen."""
        self._schedule(self._probe(timeout))

    async def drain(self):
        """Waits for every send/close/probe scheduled so far to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coroutine):
        task = asyncio.ensure_future(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, text):
        try:
            await self.websocket.send(text)
        except ConnectionClosed:
            # Expected when the peer vanished between the lookup and the write.
            logging.warning(f"Failed to send to '{self.participant_id}' ({self.remote_address}) because connection is closed.")
        except Exception:
            logging.exception(f"Unexpected error sending to '{self.participant_id}' ({self.remote_address})")

    async def _close(self, code, reason):
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception:
            logging.exception(f"Unexpected error closing connection of '{self.participant_id}'")

    async def _probe(self, timeout):
        try:
            pong_waiter = await self.websocket.ping()
            await asyncio.wait_for(pong_waiter, timeout)
        except asyncio.TimeoutError:
            logging.warning(f"Keep-alive ping to '{self.participant_id}' got no pong within {timeout}s.")
            return
        except ConnectionClosed:
            if config.DEBUG:
                logging.info(f"Keep-alive ping to '{self.participant_id}' skipped, connection closed.")
            return
        except Exception:
            logging.exception(f"Unexpected error pinging '{self.participant_id}'")
            return
        self.mark_alive()

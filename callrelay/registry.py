# callrelay/registry.py
# The connection registry: the single source of truth for who is online.
# Maps participant identifiers to their Channel. Keys are unique and the last
# registration for an identifier wins; replacing an entry does not close the old Channel.


class Registry:
    """Participant identifier -> Channel."""

    def __init__(self):
        self._channels = {}

    def __len__(self):
        return len(self._channels)

    def __contains__(self, participant_id):
        return participant_id in self._channels

    def register(self, participant_id, channel):
        """
        Stores a channel under an identifier, replacing any previous entry.

        Args:
            participant_id (str): The identifier to register.
            channel (Channel): The connection now reachable under that identifier.

        Returns:
            Channel | None: The channel that was replaced, if any. It is left open.
        """
        superseded = self._channels.get(participant_id)
        self._channels[participant_id] = channel
        if superseded is channel:
            return None
        return superseded

    def lookup(self, participant_id):
        """
        Args:
            participant_id (str): The identifier to look up.

        Returns:
            Channel | None: The registered channel, open or not.
        """
        return self._channels.get(participant_id)

    def lookup_open(self, participant_id):
        """Returns the channel for an identifier only if its transport is still open."""
        channel = self._channels.get(participant_id)
        if channel is not None and channel.is_open:
            return channel
        return None

    def remove(self, participant_id, channel=None):
        """
        Removes an identifier from the registry.

        When a channel is given, the entry is only removed if that channel is still
        the one registered, so a stale connection closing cannot unregister the
        connection that replaced it.

        Returns:
            bool: True if an entry was removed.
        """
        current = self._channels.get(participant_id)
        if current is None:
            return False
        if channel is not None and current is not channel:
            return False
        del self._channels[participant_id]
        return True

    def snapshot(self):
        """Registered identifiers, in registration order."""
        return list(self._channels)

    def items(self):
        """(identifier, channel) pairs as a list, safe to iterate while removing entries."""
        return list(self._channels.items())

    def open_channels(self):
        """Registered channels whose transport is still open."""
        return [channel for channel in self._channels.values() if channel.is_open]

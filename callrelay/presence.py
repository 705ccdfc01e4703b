# callrelay/presence.py
# Presence fan-out.
# Status changes are sent to an audience picked by a resolver. There is no contact list
# yet, so the default resolver picks everyone else who is connected; a contact/ACL-aware
# resolver can be passed to the Hub without touching dispatch.

import logging

from callrelay import config
from callrelay import protocol


class AudienceResolver:
    """Decides which participants hear about a given participant's presence."""

    def resolve_audience(self, user_id, registry):
        raise NotImplementedError


class EveryoneElse(AudienceResolver):
    """Every registered participant except the user itself."""

    def resolve_audience(self, user_id, registry):
        return [participant_id for participant_id in registry.snapshot() if participant_id != user_id]


class PresenceBroadcaster:
    def __init__(self, registry, resolver=None):
        self.registry = registry
        self.resolver = resolver or EveryoneElse()

    def notify(self, user_id, message):
        """
        Sends one frame to every open channel in the user's audience.
        Cost is linear in the audience size.

        Args:
            user_id (str): The participant the frame is about.
            message (dict): The frame to fan out.

        Returns:
            int: The number of channels the frame was sent to.
        """
        recipients = 0
        for participant_id in self.resolver.resolve_audience(user_id, self.registry):
            channel = self.registry.lookup_open(participant_id)
            if channel is None:
                continue
            channel.send(message)
            recipients += 1
        if config.DEBUG:
            logging.info(f"Fanned out '{message.get('type')}' about '{user_id}' to {recipients} participant(s)")
        return recipients

    def broadcast_status(self, user_id, status):
        return self.notify(user_id, protocol.frame("user-status-change", userId=user_id, status=status))

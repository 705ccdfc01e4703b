# callrelay/rooms.py
# Call session bookkeeping.
# Once a call is answered both participants are mapped to a room id derived from
# their two identifiers. Rooms are ephemeral: they live in memory only and the same
# pair of identifiers always derives the same room id.
#
# The two entries of a room are written one after the other, not atomically. Nothing
# re-checks that A -> R implies B -> R, so a failure between the two writes (or a
# policy that clears only one side on disconnect) can leave a one-sided entry.

import logging

from callrelay import config

ROOM_SEPARATOR = "_"


def room_id_for(first_id, second_id):
    """Room id for a pair: the two identifiers sorted and joined with '_'."""
    return ROOM_SEPARATOR.join(sorted([first_id, second_id]))


class CallSessions:
    """Participant identifier -> room id of the call it is in."""

    def __init__(self):
        self._rooms = {}

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, participant_id):
        return participant_id in self._rooms

    def room_of(self, participant_id):
        return self._rooms.get(participant_id)

    def join(self, caller_id, answerer_id):
        """Maps both participants of an answered call to their shared room id."""
        room_id = room_id_for(caller_id, answerer_id)
        self._rooms[caller_id] = room_id
        self._rooms[answerer_id] = room_id
        if config.DEBUG:
            logging.info(f"Recording room '{room_id}' for '{caller_id}' and '{answerer_id}'")
        return room_id

    def end(self, first_id, second_id):
        """Clears both participants' entries, whatever room they were in."""
        self._rooms.pop(first_id, None)
        self._rooms.pop(second_id, None)

    def leave(self, participant_id, include_peer):
        """
        Clears a departing participant's room entry.

        Args:
            participant_id (str): The participant that disconnected.
            include_peer (bool): Also clear the counterpart's entry if it still
                points at the same room.

        Returns:
            list[str]: The identifiers whose entries were cleared.
        """
        room_id = self._rooms.pop(participant_id, None)
        if room_id is None:
            return []
        cleared = [participant_id]
        if include_peer:
            peer_id = self._peer_in_room(room_id, participant_id)
            if peer_id is not None and self._rooms.get(peer_id) == room_id:
                del self._rooms[peer_id]
                cleared.append(peer_id)
        return cleared

    def _peer_in_room(self, room_id, participant_id):
        # Identifiers may themselves contain the separator, so the peer is found by
        # matching the room id against the entries that point at it rather than by splitting.
        for other_id, other_room in self._rooms.items():
            if other_room == room_id and room_id_for(participant_id, other_id) == room_id:
                return other_id
        return None

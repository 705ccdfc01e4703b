# callrelay/handlers.py
# One handler per inbound message type.
# Handlers are plain functions of (hub, sender, message). They keep no state of their own:
# targets are resolved through the hub's registry on every call, and the only state they
# touch is the hub's call sessions (answer and end-call). Replies meant for the sender go
# to the sender's own channel.

import logging

from callrelay import config
from callrelay import protocol


def _relay(hub, sender, target_id, message):
    """Sends a frame to target_id if it is online. Returns True if it was sent."""
    target = hub.registry.lookup_open(target_id)
    if target is None:
        if config.DEBUG:
            logging.info(f"Dropping '{message['type']}' from '{sender.participant_id}': '{target_id}' is not connected.")
        return False
    if config.DEBUG:
        logging.info(f"Relaying '{message['type']}' from '{sender.participant_id}' to '{target_id}'")
    target.send(message)
    return True


# --- Call Setup ---

def handle_call(hub, sender, message):
    """
    Forwards an offer to the target as incoming-call and tells the caller whether it was delivered.

    Args:
        hub (Hub): The hub owning the registry.
        sender (Channel): The caller's connection.
        message (dict): A validated 'call' frame with targetId, offer and optional callerName.
    """
    caller_id = sender.participant_id
    target_id = message["targetId"]
    logging.info(f"Call from '{caller_id}' to '{target_id}'")

    incoming = protocol.frame(
        "incoming-call",
        callerId=caller_id,
        callerName=message.get("callerName") or caller_id,
        offer=message["offer"],
    )
    if _relay(hub, sender, target_id, incoming):
        sender.send(protocol.frame("call-sent", targetId=target_id, message="Call notification sent"))
    else:
        logging.info(f"Call target '{target_id}' is not connected.")
        sender.send(protocol.frame("user-offline", userId=target_id, message="User is not connected"))


def handle_answer(hub, sender, message):
    """
    Forwards an answer to the caller and, once delivered, puts both parties in one call room.

    Args:
        hub (Hub): The hub owning the registry and call sessions.
        sender (Channel): The answering participant's connection.
        message (dict): A validated 'answer' frame with callerId and answer.
    """
    answerer_id = sender.participant_id
    caller_id = message["callerId"]
    answered = protocol.frame("call-answered", answererId=answerer_id, answer=message["answer"])
    if _relay(hub, sender, caller_id, answered):
        room_id = hub.sessions.join(caller_id, answerer_id)
        logging.info(f"Call accepted between '{caller_id}' and '{answerer_id}' (room '{room_id}')")


def handle_ice_candidate(hub, sender, message):
    """
    Args:
        hub (Hub): The hub owning the registry.
        sender (Channel): The connection the candidate came from.
        message (dict): A validated 'ice-candidate' frame with targetId and candidate.
    """
    # Candidates are numerous and best-effort; an unreachable target is not reported.
    _relay(hub, sender, message["targetId"],
           protocol.frame("ice-candidate", senderId=sender.participant_id, candidate=message["candidate"]))


def handle_decline_call(hub, sender, message):
    """Tells the caller its call was declined. Nothing is reported back when the caller is gone."""
    if _relay(hub, sender, message["callerId"], protocol.frame("call-declined", declinerId=sender.participant_id)):
        logging.info(f"Call declined by '{sender.participant_id}'")


def handle_end_call(hub, sender, message):
    """
    Tells the other party the call ended and clears both room entries.

    Args:
        hub (Hub): The hub owning the registry and call sessions.
        sender (Channel): The connection of the participant hanging up.
        message (dict): A validated 'end-call' frame with targetId.
    """
    ender_id = sender.participant_id
    target_id = message["targetId"]
    _relay(hub, sender, target_id, protocol.frame("call-ended", enderId=ender_id))
    # Cleared whether or not the target was reachable.
    hub.sessions.end(ender_id, target_id)
    logging.info(f"Call ended by '{ender_id}'")


# --- Chat ---

def handle_chat_message(hub, sender, message):
    """
    Args:
        hub (Hub): The hub owning the registry.
        sender (Channel): The author's connection.
        message (dict): A validated 'chat-message' frame with targetId and content.
    """
    _relay(hub, sender, message["targetId"],
           protocol.frame("chat-message", senderId=sender.participant_id, content=message["content"]))


def handle_typing(hub, sender, message):
    """
    Args:
        hub (Hub): The hub owning the registry.
        sender (Channel): The typing participant's connection.
        message (dict): A validated 'typing' frame with targetId and isTyping.
    """
    _relay(hub, sender, message["targetId"],
           protocol.frame("typing", senderId=sender.participant_id, isTyping=message["isTyping"]))


# --- Presence and Queries ---

def handle_update_status(hub, sender, message):
    """
    Fans the sender's new status out as user-status-change.

    Args:
        hub (Hub): The hub owning the presence broadcaster.
        sender (Channel): The connection whose status changed.
        message (dict): A validated 'update-status' frame with status.
    """
    logging.info(f"Status update for '{sender.participant_id}': {message['status']}")
    hub.presence.broadcast_status(sender.participant_id, message["status"])


def handle_get_users(hub, sender, message):
    """Replies with every registered participant."""
    now = protocol.timestamp()
    # Only connected participants are known, so every listed user is online.
    users = [{"id": participant_id, "online": True, "timestamp": now} for participant_id in hub.registry.snapshot()]
    sender.send(protocol.frame("users-list", users=users, total=len(users), timestamp=now))


def handle_ping(hub, sender, message):
    """Answers an application-level ping with pong."""
    sender.send(protocol.frame("pong"))


HANDLERS = {
    "call": handle_call,
    "answer": handle_answer,
    "ice-candidate": handle_ice_candidate,
    "decline-call": handle_decline_call,
    "end-call": handle_end_call,
    "chat-message": handle_chat_message,
    "typing": handle_typing,
    "update-status": handle_update_status,
    "get-users": handle_get_users,
    "ping": handle_ping,
}

# callrelay/protocol.py
# Wire protocol for the signaling relay.
# Responsibilities include:
# - Declaring the catalog of inbound message types and the fields each one requires.
# - Parsing and validating inbound frames (UTF-8 JSON objects carrying a string 'type').
# - Building outbound frames, each stamped with a server timestamp.
# - Defining the exceptions raised for frames the relay cannot act on.

import json
import time


# --- Exceptions ---

class ProtocolError(Exception):
    """Base class for inbound frames the relay refuses to act on."""


class MalformedMessage(ProtocolError):
    """The frame is not a UTF-8 JSON object."""


class InvalidPayload(MalformedMessage):
    """The frame has a known type but a required field is missing or has the wrong type."""

    def __init__(self, message_type, field, reason):
        self.message_type = message_type
        self.field = field
        super().__init__(f"Field '{field}' of '{message_type}' {reason}")


class UnrecognizedType(ProtocolError):
    """The frame's 'type' is absent or not part of the catalog."""

    def __init__(self, message_type):
        self.message_type = message_type
        super().__init__(f"Unrecognized message type: {message_type}")


# --- Field Validators ---
# Each validator returns None when the value is acceptable, otherwise a short reason.

def _text(value):
    if not isinstance(value, str) or not value.strip():
        return "must be a non-empty string"
    return None


def _optional_text(value):
    if value is not None and not isinstance(value, str):
        return "must be a string"
    return None


def _boolean(value):
    if not isinstance(value, bool):
        return "must be a boolean"
    return None


def _present(value):
    if value is None:
        return "must not be null"
    return None


# --- Inbound Catalog ---
# Maps each inbound 'type' to {field: (validator, required)}.
INBOUND_CATALOG = {
    "call": {
        "targetId": (_text, True),
        "offer": (_present, True),
        "callerName": (_optional_text, False),
    },
    "answer": {
        "callerId": (_text, True),
        "answer": (_present, True),
    },
    "ice-candidate": {
        "targetId": (_text, True),
        "candidate": (_present, True),
    },
    "decline-call": {
        "callerId": (_text, True),
    },
    "end-call": {
        "targetId": (_text, True),
    },
    "chat-message": {
        "targetId": (_text, True),
        "content": (_present, True),
    },
    "typing": {
        "targetId": (_text, True),
        "isTyping": (_boolean, True),
    },
    "update-status": {
        "status": (_text, True),
    },
    "get-users": {},
    "ping": {},
}


# --- Parsing ---

def parse(raw):
    """
    Decodes and validates one inbound frame.

    Args:
        raw (str | bytes): The frame exactly as received from the transport.

    Returns:
        dict: The decoded message, guaranteed to satisfy INBOUND_CATALOG for its type.

    Raises:
        MalformedMessage: Not UTF-8, not JSON, or not an object.
        UnrecognizedType: 'type' is absent, not a string, or not in the catalog.
        InvalidPayload: A field required by the type is missing or invalid.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedMessage("Frame is not valid UTF-8")

    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        raise MalformedMessage("Invalid JSON message")

    if not isinstance(message, dict):
        raise MalformedMessage("Message must be a JSON object")

    # A missing or non-string type is handled like any other type outside the catalog.
    message_type = message.get("type")
    fields = INBOUND_CATALOG.get(message_type) if isinstance(message_type, str) else None
    if fields is None:
        raise UnrecognizedType(message_type)

    for field, (validator, required) in fields.items():
        if field not in message:
            if required:
                raise InvalidPayload(message_type, field, "is required")
            continue
        reason = validator(message[field])
        if reason:
            raise InvalidPayload(message_type, field, reason)

    return message


# --- Outbound Frames ---

def timestamp():
    """Server timestamp in integer epoch milliseconds."""
    return int(time.time() * 1000)


def frame(message_type, **fields):
    """Builds an outbound frame dict: {'type': ..., <fields>, 'timestamp': <epoch ms>}."""
    message = {"type": message_type}
    message.update(fields)
    message.setdefault("timestamp", timestamp())
    return message


def error_frame(message, **fields):
    return frame("error", message=message, **fields)

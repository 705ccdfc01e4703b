# callrelay/config.py
# This file centralizes configuration settings for the callrelay signaling server.
# Every setting can be overridden through an environment variable of the same name,
# which is how hosting platforms (Render, Fly, Heroku, ...) hand us the port.

import os


def _env_flag(name, default):
    """Reads a boolean flag from the environment ('1', 'true', 'yes', 'on' are truthy)."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Network Configuration ---

# HOST: The IP address the server listens on.
# - '0.0.0.0': all interfaces (needed inside containers).
# - '127.0.0.1': local machine only.
HOST = os.environ.get("HOST", "0.0.0.0")

# PORT: The single TCP port serving both the WebSocket endpoint and the health/demo HTTP routes.
PORT = int(os.environ.get("PORT", 3000))

# SERVICE_NAME: Reported by the health probe.
SERVICE_NAME = "callrelay"

# --- SSL Configuration ---
# Most deployments terminate TLS at a proxy, so WSS is off by default.

CERT_DIR = os.path.join(os.path.dirname(__file__), '..', 'certs')
CERT_FILE = os.environ.get("CERT_FILE", os.path.join(CERT_DIR, 'cert.pem'))
KEY_FILE = os.environ.get("KEY_FILE", os.path.join(CERT_DIR, 'key.pem'))

# ENABLE_SSL: Serve WSS using CERT_FILE/KEY_FILE. Falls back to plain WS if they cannot be loaded.
ENABLE_SSL = _env_flag("ENABLE_SSL", False)

# --- Transport Configuration ---

# MAX_MESSAGE_SIZE: Largest inbound frame accepted, in bytes. SDP offers with many
# candidates are a few KB; 1 MiB leaves plenty of headroom.
MAX_MESSAGE_SIZE = int(os.environ.get("MAX_MESSAGE_SIZE", 1024 * 1024))

# COMPRESSION: 'deflate' enables the permessage-deflate extension, 'none' disables it.
COMPRESSION = os.environ.get("COMPRESSION", "deflate")

# --- Liveness Configuration ---

# SWEEP_INTERVAL: Seconds between registry sweeps that evict connections no longer open.
SWEEP_INTERVAL = float(os.environ.get("SWEEP_INTERVAL", 60))

# PING_INTERVAL: Seconds between keep-alive pings sent to every open connection.
PING_INTERVAL = float(os.environ.get("PING_INTERVAL", 30))

# PING_TIMEOUT: Seconds to wait for a pong before logging the probe as missed.
# A missed pong never evicts a connection on its own.
PING_TIMEOUT = float(os.environ.get("PING_TIMEOUT", 20))

# --- Policy Flags ---

# ALLOW_ANONYMOUS: When a client connects without ?userId=..., assign it an
# 'anonymous_<epoch-ms>' identifier (True) or close it with 1008 policy violation (False).
ALLOW_ANONYMOUS = _env_flag("ALLOW_ANONYMOUS", True)

# REPLY_TO_UNKNOWN_TYPES: Answer frames with an unrecognized 'type' with an error frame (True)
# or log and drop them (False).
REPLY_TO_UNKNOWN_TYPES = _env_flag("REPLY_TO_UNKNOWN_TYPES", True)

# CLOSE_SUPERSEDED_CONNECTIONS: When an identifier reconnects, close the connection it replaces.
# Off by default: the old connection stays open until the client or transport closes it.
CLOSE_SUPERSEDED_CONNECTIONS = _env_flag("CLOSE_SUPERSEDED_CONNECTIONS", False)

# CLEAR_PEER_ROOM_ON_DISCONNECT: When a participant disconnects, also clear the room
# membership of the peer it was in a call with.
CLEAR_PEER_ROOM_ON_DISCONNECT = _env_flag("CLEAR_PEER_ROOM_ON_DISCONNECT", True)

# --- Debugging Configuration ---

# DEBUG: Verbose per-frame logging (raw inbound frames, every relay).
# Lifecycle events (connects, disconnects, sweeps, shutdown) and errors are logged regardless.
DEBUG = _env_flag("DEBUG", False)

# callrelay/server.py
# This file wires the relay to the network.
# Responsibilities include:
# - Resolving each connecting client's participant identifier from the connection URI.
# - Running one task per connection that forwards its events into the hub queue.
# - Serving the health/demo HTTP routes on the same port.
# - Setting up SSL context for Secure WebSockets (WSS) if configured.
# - Starting the liveness supervisor and running the shutdown sequence on SIGTERM/SIGINT.

import asyncio
import functools
import logging
import signal
import ssl
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from callrelay import config
from callrelay import shutdown
from callrelay import web
from callrelay.connection import Channel
from callrelay.hub import Connected, Disconnected, Hub, Inbound, anonymous_id
from callrelay.liveness import LivenessSupervisor


# --- Participant Identification ---

def resolve_participant_id(path):
    """
    Picks the participant identifier for a new connection from its request path.

    Args:
        path (str): The request target, e.g. '/?userId=alice'.

    Returns:
        str | None: The 'userId' query parameter; a generated anonymous identifier
        when it is missing and ALLOW_ANONYMOUS is set; otherwise None.
    """
    values = parse_qs(urlsplit(path).query).get("userId", [])
    participant_id = values[0].strip() if values else ""
    if participant_id:
        return participant_id
    if config.ALLOW_ANONYMOUS:
        return anonymous_id()
    return None


# --- Main Connection Handler ---

async def connection_handler(hub, websocket):
    """
    Handles one client's WebSocket connection for its whole lifetime.
    The handler never touches relay state: it only turns the connection's lifecycle
    into Connected / Inbound / Disconnected events for the hub.

    Args:
        hub (Hub): The hub that owns the relay state.
        websocket (websockets.asyncio.server.ServerConnection): The client connection.
    """
    client_address = websocket.remote_address
    participant_id = resolve_participant_id(websocket.request.path)
    if participant_id is None:
        logging.warning(f"Connection from {client_address} has no userId. Closing connection.")
        await websocket.close(code=1008, reason="Missing userId")
        return

    channel = Channel(websocket, participant_id)
    hub.submit(Connected(channel))
    try:
        async for message in websocket:
            hub.submit(Inbound(channel, message))
    except ConnectionClosedOK:
        logging.info(f"Client '{participant_id}' ({client_address}) disconnected gracefully.")
    except ConnectionClosedError as e:
        # Transport errors only get logged here; the registry catches up through the
        # disconnect event or, failing that, the next sweep.
        logging.info(f"Client '{participant_id}' ({client_address}) disconnected with error: {e}")
    except Exception:
        logging.exception(f"An unexpected error occurred handling client '{participant_id}' ({client_address})")
    finally:
        hub.submit(Disconnected(channel))
        logging.info(f"Connection closed for '{participant_id}' ({client_address}), code {websocket.close_code}")


# --- SSL ---

def build_ssl_context():
    """Returns an SSL context for WSS, or None when SSL is disabled or the certificate cannot be loaded."""
    if not config.ENABLE_SSL:
        return None
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). Disabling SSL, falling back to WS.")
    except (ssl.SSLError, OSError):
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


# --- Server Startup Function ---

async def start_server(host, port):
    """
    Starts the relay and runs it until SIGTERM or SIGINT, then shuts it down gracefully.

    Args:
        host (str): The address to bind.
        port (int): The port for both WebSocket and HTTP traffic.

    Returns:
        int: The process exit code.
    """
    ssl_context = build_ssl_context()
    effective_protocol = "wss" if ssl_context else "ws"
    compression = None if config.COMPRESSION.lower() == "none" else config.COMPRESSION

    loop = asyncio.get_running_loop()
    stop = loop.create_future()
    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, _request_stop, stop, signum)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C surfaces as KeyboardInterrupt instead.
            pass

    hub = Hub()
    hub_task = asyncio.create_task(hub.run())

    logging.info(f"Starting server on {effective_protocol}://{host}:{port}")
    logging.info(f"Maximum WebSocket message size set to: {config.MAX_MESSAGE_SIZE} bytes")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")
    try:
        server = await serve(
            functools.partial(connection_handler, hub),
            host,
            port,
            ssl=ssl_context,
            max_size=config.MAX_MESSAGE_SIZE,
            compression=compression,
            process_request=functools.partial(web.process_request, hub),
            # Keep-alive pings come from the liveness supervisor instead.
            ping_interval=None,
        )
    except OSError:
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
        hub_task.cancel()
        raise

    supervisor = LivenessSupervisor(hub)
    supervisor.start()
    logging.info(f"WebSocket URL: {effective_protocol}://localhost:{port}/?userId=<id>")
    logging.info(f"Health URL: {'https' if ssl_context else 'http'}://localhost:{port}/health")

    await stop
    return await shutdown.coordinate(hub, server, supervisor, hub_task)


def _request_stop(stop, signum):
    logging.info(f"{signal.Signals(signum).name} received")
    if not stop.done():
        stop.set_result(signum)

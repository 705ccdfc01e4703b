# callrelay/web.py
# Plain HTTP routes served on the WebSocket port.
# Hosting platforms probe the service over HTTP, so requests that are not WebSocket
# upgrades are answered here through the websockets process_request hook:
# - '/' and '/health': JSON health report with the live connection count.
# - '/test': a small demo page that opens a WebSocket back to the server.
# - anything else: 404.

import datetime
import html
import json
from http import HTTPStatus
from urllib.parse import urlsplit

from websockets.datastructures import Headers
from websockets.http11 import Response

from callrelay import config

HEALTH_PATHS = ("/", "/health")
DEMO_PATH = "/test"

DEMO_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>WebSocket Test</title>
</head>
<body>
    <h1>WebSocket Server is Running</h1>
    <p>Active connections: {connection_count}</p>
    <p>Server time: {server_time}</p>
    <script>
        const scheme = window.location.protocol === 'https:' ? 'wss://' : 'ws://';
        const ws = new WebSocket(scheme + window.location.host + '/?userId=demo_' + Date.now());
        ws.onopen = () => {{
            document.body.innerHTML += '<p>WebSocket connected!</p>';
            ws.send(JSON.stringify({{type: 'ping'}}));
        }};
        ws.onmessage = (e) => {{
            const p = document.createElement('p');
            p.textContent = 'Received: ' + e.data;
            document.body.appendChild(p);
        }};
    </script>
</body>
</html>
"""


def _utc_now():
    """ISO-8601 UTC time with a Z suffix."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _response(status, content_type, body):
    body = body.encode("utf-8")
    headers = Headers()
    headers["Content-Type"] = content_type
    headers["Content-Length"] = str(len(body))
    headers["Connection"] = "close"
    return Response(status.value, status.phrase, headers, body)


def is_upgrade(request):
    """True when the request asks for a WebSocket upgrade."""
    return "websocket" in request.headers.get("Upgrade", "").lower()


def health(hub):
    """
    Args:
        hub (Hub): Source of the live connection count.

    Returns:
        Response: 200 with the JSON health report.
    """
    report = {
        "status": "ok",
        "service": config.SERVICE_NAME,
        "timestamp": _utc_now(),
        "connectionCount": hub.connection_count,
    }
    return _response(HTTPStatus.OK, "application/json", json.dumps(report))


def demo_page(hub):
    """
    Args:
        hub (Hub): Source of the live connection count.

    Returns:
        Response: 200 with the HTML page that connects back over WebSocket.
    """
    page = DEMO_PAGE.format(connection_count=hub.connection_count, server_time=html.escape(_utc_now()))
    return _response(HTTPStatus.OK, "text/html; charset=utf-8", page)


def not_found():
    """Returns a plain-text 404 response."""
    return _response(HTTPStatus.NOT_FOUND, "text/plain; charset=utf-8", "Not Found")


def process_request(hub, connection, request):
    """
    websockets process_request hook.

    Returns:
        Response | None: An HTTP response for plain requests, or None to let a
        WebSocket upgrade continue with the handshake.
    """
    if is_upgrade(request):
        return None
    path = urlsplit(request.path).path
    if path in HEALTH_PATHS:
        return health(hub)
    if path == DEMO_PATH:
        return demo_page(hub)
    return not_found()

import json

from websockets.datastructures import Headers
from websockets.http11 import Request

from callrelay import web
from callrelay.hub import Hub
from tests.conftest import FakeChannel


def _request(path, upgrade=False):
    headers = Headers()
    headers["Host"] = "localhost:3000"
    if upgrade:
        headers["Upgrade"] = "websocket"
        headers["Connection"] = "Upgrade"
    return Request(path, headers)


def _hub_with(*participant_ids):
    hub = Hub()
    for participant_id in participant_ids:
        hub.connect(FakeChannel(participant_id))
    return hub


def test_health_reports_connection_count():
    hub = _hub_with("alice", "bob")
    for path in ("/health", "/", "/health?probe=1"):
        response = web.process_request(hub, None, _request(path))
        assert response.status_code == 200
        assert response.headers["Content-Type"] == "application/json"
        report = json.loads(response.body)
        assert report["status"] == "ok"
        assert report["service"] == "callrelay"
        assert report["connectionCount"] == 2
        assert report["timestamp"].endswith("Z")


def test_demo_page():
    response = web.process_request(_hub_with("alice"), None, _request("/test"))
    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/html")
    page = response.body.decode("utf-8")
    assert "Active connections: 1" in page
    assert "new WebSocket(" in page
    assert response.headers["Content-Length"] == str(len(response.body))


def test_unknown_path_is_not_found():
    response = web.process_request(Hub(), None, _request("/admin"))
    assert response.status_code == 404
    assert response.body == b"Not Found"


def test_upgrade_requests_continue_to_handshake():
    assert web.process_request(Hub(), None, _request("/?userId=alice", upgrade=True)) is None
    assert web.process_request(Hub(), None, _request("/anything", upgrade=True)) is None

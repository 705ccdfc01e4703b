import pytest

from callrelay import config
from callrelay.hub import Hub


class FakeChannel:
    """Records what the hub does to a connection instead of touching a socket."""

    def __init__(self, participant_id, open=True, log=None):
        self.participant_id = participant_id
        self.remote_address = ("127.0.0.1", 40000)
        self.open = open
        self.sent = []
        self.closed_with = None
        self.probes = []
        self.alive_marks = 0
        self.drained = False
        self.log = log if log is not None else []

    @property
    def is_open(self):
        return self.open

    def send(self, message):
        self.sent.append(message)
        self.log.append(("send", self.participant_id, message["type"]))

    def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        self.open = False
        self.log.append(("close", self.participant_id, code))

    def probe(self, timeout):
        self.probes.append(timeout)

    def mark_alive(self):
        self.alive_marks += 1

    async def drain(self):
        self.drained = True
        self.log.append(("drain", self.participant_id))

    def types(self):
        return [message["type"] for message in self.sent]

    def last(self):
        return self.sent[-1]


@pytest.fixture(autouse=True)
def default_policies(monkeypatch):
    monkeypatch.setattr(config, "DEBUG", False)
    monkeypatch.setattr(config, "ALLOW_ANONYMOUS", True)
    monkeypatch.setattr(config, "REPLY_TO_UNKNOWN_TYPES", True)
    monkeypatch.setattr(config, "CLOSE_SUPERSEDED_CONNECTIONS", False)
    monkeypatch.setattr(config, "CLEAR_PEER_ROOM_ON_DISCONNECT", True)


@pytest.fixture
def hub():
    return Hub()


@pytest.fixture
def connect(hub):
    """Connects fake participants and forgets the welcome/presence frames they got."""

    def _connect(*participant_ids):
        channels = [FakeChannel(participant_id) for participant_id in participant_ids]
        for channel in channels:
            hub.connect(channel)
        for channel in channels:
            channel.sent.clear()
        return channels[0] if len(channels) == 1 else channels

    return _connect

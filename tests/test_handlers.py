import json

from tests.conftest import FakeChannel


def send(hub, channel, **message):
    hub.dispatch(channel, json.dumps(message))


# --- call ---

def test_call_to_online_target_yields_exactly_two_frames(hub, connect):
    alice, bob, carol = connect("alice", "bob", "carol")

    send(hub, alice, type="call", targetId="bob", offer={"sdp": "x"}, callerName="Alice")

    assert bob.types() == ["incoming-call"]
    incoming = bob.last()
    assert incoming["callerId"] == "alice"
    assert incoming["callerName"] == "Alice"
    assert incoming["offer"] == {"sdp": "x"}
    assert alice.types() == ["call-sent"]
    assert alice.last()["targetId"] == "bob"
    assert carol.sent == []


def test_call_without_caller_name_uses_caller_id(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="call", targetId="bob", offer={"sdp": "x"})
    assert bob.last()["callerName"] == "alice"


def test_call_to_offline_target_yields_user_offline(hub, connect):
    alice, bob = connect("alice", "bob")

    send(hub, alice, type="call", targetId="zed", offer={"sdp": "x"})

    assert alice.types() == ["user-offline"]
    assert alice.last()["userId"] == "zed"
    assert bob.sent == []


def test_call_to_closed_target_yields_user_offline(hub, connect):
    alice, bob = connect("alice", "bob")
    bob.open = False

    send(hub, alice, type="call", targetId="bob", offer={"sdp": "x"})

    assert alice.types() == ["user-offline"]
    assert bob.sent == []


# --- answer ---

def test_answer_notifies_caller_and_records_room(hub, connect):
    alice, bob = connect("alice", "bob")

    send(hub, bob, type="answer", callerId="alice", answer={"sdp": "y"})

    assert alice.types() == ["call-answered"]
    assert alice.last()["answererId"] == "bob"
    assert alice.last()["answer"] == {"sdp": "y"}
    assert bob.sent == []
    assert hub.sessions.room_of("alice") == "alice_bob"
    assert hub.sessions.room_of("bob") == "alice_bob"


def test_answer_to_offline_caller_sends_nothing_and_records_nothing(hub, connect):
    bob = connect("bob")

    send(hub, bob, type="answer", callerId="alice", answer={"sdp": "y"})

    assert bob.sent == []
    assert len(hub.sessions) == 0


# --- ice-candidate / decline / chat / typing ---

def test_ice_candidate_is_forwarded(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="ice-candidate", targetId="bob", candidate={"candidate": "c1"})
    assert bob.types() == ["ice-candidate"]
    assert bob.last()["senderId"] == "alice"
    assert bob.last()["candidate"] == {"candidate": "c1"}
    assert alice.sent == []


def test_ice_candidate_to_offline_target_is_silent(hub, connect):
    alice = connect("alice")
    send(hub, alice, type="ice-candidate", targetId="bob", candidate={"candidate": "c1"})
    assert alice.sent == []


def test_decline_call_is_forwarded(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, bob, type="decline-call", callerId="alice")
    assert alice.types() == ["call-declined"]
    assert alice.last()["declinerId"] == "bob"
    assert bob.sent == []


def test_chat_message_is_forwarded_or_dropped(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="chat-message", targetId="bob", content="hi")
    send(hub, alice, type="chat-message", targetId="zed", content="hello?")
    assert bob.types() == ["chat-message"]
    assert bob.last()["senderId"] == "alice"
    assert bob.last()["content"] == "hi"
    assert alice.sent == []


def test_typing_is_forwarded(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="typing", targetId="bob", isTyping=True)
    assert bob.last()["type"] == "typing"
    assert bob.last()["isTyping"] is True
    assert bob.last()["senderId"] == "alice"


# --- end-call ---

def test_end_call_notifies_target_and_clears_both_rooms(hub, connect):
    alice, bob = connect("alice", "bob")
    hub.sessions.join("alice", "bob")

    send(hub, alice, type="end-call", targetId="bob")

    assert bob.types() == ["call-ended"]
    assert bob.last()["enderId"] == "alice"
    assert "alice" not in hub.sessions
    assert "bob" not in hub.sessions


def test_end_call_clears_rooms_even_when_target_unreachable(hub, connect):
    alice, bob = connect("alice", "bob")
    hub.sessions.join("alice", "bob")
    bob.open = False

    send(hub, alice, type="end-call", targetId="bob")

    assert bob.sent == []
    assert len(hub.sessions) == 0


# --- update-status / get-users / ping ---

def test_update_status_is_broadcast_to_others(hub, connect):
    alice, bob, carol = connect("alice", "bob", "carol")
    send(hub, alice, type="update-status", status="busy")
    assert alice.sent == []
    for other in (bob, carol):
        assert other.types() == ["user-status-change"]
        assert other.last()["userId"] == "alice"
        assert other.last()["status"] == "busy"


def test_get_users_lists_every_registered_id_as_online(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="get-users")

    assert alice.types() == ["users-list"]
    reply = alice.last()
    assert [user["id"] for user in reply["users"]] == ["alice", "bob"]
    assert all(user["online"] is True for user in reply["users"])
    assert reply["total"] == 2
    assert bob.sent == []


def test_ping_replies_pong_to_sender_only(hub, connect):
    alice, bob = connect("alice", "bob")
    send(hub, alice, type="ping")
    assert alice.types() == ["pong"]
    assert bob.sent == []


# --- Walkthrough ---

def test_alice_calls_bob_end_to_end(hub, connect):
    alice, bob = connect("alice", "bob")

    send(hub, alice, type="call", targetId="bob", offer={"sdp": "x"})
    incoming = bob.last()
    assert {k: v for k, v in incoming.items() if k != "timestamp"} == {
        "type": "incoming-call", "callerId": "alice", "callerName": "alice", "offer": {"sdp": "x"},
    }
    assert isinstance(incoming["timestamp"], int)
    assert alice.last()["type"] == "call-sent"
    assert alice.last()["targetId"] == "bob"

    send(hub, bob, type="answer", callerId="alice", answer={"sdp": "y"})
    assert alice.last()["type"] == "call-answered"
    assert alice.last()["answererId"] == "bob"
    assert alice.last()["answer"] == {"sdp": "y"}
    assert hub.sessions.room_of("alice") == "alice_bob"
    assert hub.sessions.room_of("bob") == "alice_bob"

    send(hub, alice, type="end-call", targetId="bob")
    assert bob.last()["type"] == "call-ended"
    assert bob.last()["enderId"] == "alice"
    assert "alice" not in hub.sessions
    assert "bob" not in hub.sessions


def test_replies_go_to_the_connection_that_sent_the_frame(hub, connect):
    old = connect("alice")
    new = FakeChannel("alice")
    hub.connect(new)
    new.sent.clear()

    send(hub, old, type="ping")

    assert old.types() == ["pong"]
    assert new.sent == []

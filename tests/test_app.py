"""Integration tests: HTTP endpoints and the WebSocket channel."""
import time

import pytest
from fastapi.testclient import TestClient

from callsync.settings import IceSettings, ServiceSettings
from callsync.storage import StorageBackend, StorageSettings
from callsync.transport.app import create_app

OFFER = {"type": "offer", "sdp": "v=0\r\n"}


def _make_settings(**overrides) -> ServiceSettings:
    """Settings with a timer slow enough that no tick interferes with a test."""
    values = dict(
        tick_interval_seconds=3600.0,
        grace_period_seconds=60.0,
        default_duration_minutes=30,
        ice=IceSettings(turn_url="turn.example.com:3478", turn_username="u", turn_password="p"),
        storage=StorageSettings(backend=StorageBackend.MEMORY),
    )
    values.update(overrides)
    return ServiceSettings(**values)


@pytest.fixture
def client():
    with TestClient(create_app(_make_settings())) as c:
        yield c


def _create_session(client: TestClient, duration: int | None = 1) -> str:
    body = {"callerId": "alice", "calleeId": "bob"}
    if duration is not None:
        body["durationLimit"] = duration
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 200
    return response.json()["sessionId"]


def _join(ws, session_id: str, user_id: str) -> None:
    ws.send_json({"event": "join_session", "data": {"sessionId": session_id, "userId": user_id}})


class TestSessionEndpoints:
    """REST creation and lookup."""

    def test_create_session(self, client: TestClient) -> None:
        response = client.post(
            "/api/sessions",
            json={"callerId": "alice", "calleeId": "bob", "durationLimit": 15},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["callerId"] == "alice"
        assert data["calleeId"] == "bob"
        assert data["durationLimit"] == 15
        assert data["channelName"].startswith("call_")
        assert data["sessionId"]

    def test_default_duration(self, client: TestClient) -> None:
        session_id = _create_session(client, duration=None)
        data = client.get(f"/api/sessions/{session_id}").json()
        assert data["durationLimit"] == 30
        assert data["timeRemaining"] == 1800

    def test_invalid_duration_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/sessions",
            json={"callerId": "alice", "calleeId": "bob", "durationLimit": 0},
        )
        assert response.status_code == 422

    def test_get_pending_session(self, client: TestClient) -> None:
        session_id = _create_session(client)
        response = client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == session_id
        assert data["status"] == "pending"
        assert data["timeRemaining"] == 60
        assert data["startTime"] is None

    def test_get_unknown_session(self, client: TestClient) -> None:
        response = client.get("/api/sessions/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found or expired"


class TestServiceEndpoints:
    """Health and ICE configuration."""

    def test_health(self, client: TestClient) -> None:
        _create_session(client)
        data = client.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["activeSessions"] == 1
        assert data["runningSessions"] == 0
        assert data["connections"] == 0

    def test_turn_config(self, client: TestClient) -> None:
        servers = client.get("/api/turn-config").json()["iceServers"]
        urls = [s["urls"] for s in servers]
        assert "stun:stun.l.google.com:19302" in urls
        assert "turn:turn.example.com:3478?transport=udp" in urls
        assert "turn:turn.example.com:3478?transport=tcp" in urls
        turn = [s for s in servers if s["urls"].startswith("turn:")][0]
        assert turn["username"] == "u"
        assert turn["credential"] == "p"

    def test_turn_config_without_relay(self) -> None:
        with TestClient(create_app(_make_settings(ice=IceSettings()))) as c:
            servers = c.get("/api/turn-config").json()["iceServers"]
        assert all(s["urls"].startswith("stun:") for s in servers)


class TestWebSocketCall:
    """Full call flow over the WebSocket channel."""

    def test_join_offer_and_end(self, client: TestClient) -> None:
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            _join(alice, session_id, "alice")
            state = alice.receive_json()
            assert state["event"] == "session_state"
            assert state["data"]["status"] == "pending"
            assert state["data"]["participants"] == ["alice"]

            _join(bob, session_id, "bob")
            assert alice.receive_json() == {"event": "user_joined", "data": {"userId": "bob"}}
            started = alice.receive_json()
            assert started["event"] == "call_started"
            assert started["data"]["timeRemaining"] == 60
            assert bob.receive_json()["event"] == "call_started"
            bob_state = bob.receive_json()
            assert bob_state["event"] == "session_state"
            assert bob_state["data"]["status"] == "active"

            info = client.get(f"/api/sessions/{session_id}").json()
            assert info["status"] == "active"
            assert info["startTime"] is not None

            bob.send_json({"event": "webrtc_offer", "data": {"sessionId": session_id, "offer": OFFER}})
            assert alice.receive_json() == {
                "event": "webrtc_offer",
                "data": {"offer": OFFER, "from": "bob"},
            }

            alice.send_json({"event": "end_call", "data": {"sessionId": session_id}})
            for ws in (alice, bob):
                assert ws.receive_json() == {
                    "event": "force_end_call",
                    "data": {"reason": "manual", "message": "Call ended by participant."},
                }

            _join(bob, session_id, "bob")
            assert bob.receive_json() == {
                "event": "error_event",
                "data": {"message": "Session has expired. Cannot rejoin."},
            }

        assert client.get(f"/api/sessions/{session_id}").json()["status"] == "ended"

    def test_unknown_session(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            _join(ws, "missing", "alice")
            assert ws.receive_json() == {
                "event": "error_event",
                "data": {"message": "Session not found"},
            }

    def test_invalid_frames(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            reply = ws.receive_json()
            assert reply["event"] == "error_event"
            assert reply["data"]["message"].startswith("Invalid message:")

            ws.send_json({"event": "join_session", "data": {"sessionId": "x"}})
            reply = ws.receive_json()
            assert reply["event"] == "error_event"
            assert reply["data"]["message"].startswith("Invalid message:")

            ws.send_json({"event": "teleport", "data": {}})
            assert ws.receive_json()["event"] == "error_event"

    def test_disconnect_notifies_peer_and_ends(self, client: TestClient) -> None:
        session_id = _create_session(client)

        with client.websocket_connect("/ws") as bob:
            with client.websocket_connect("/ws") as alice:
                _join(alice, session_id, "alice")
                alice.receive_json()
                _join(bob, session_id, "bob")
                bob.receive_json()
                bob.receive_json()

            assert bob.receive_json() == {"event": "user_left", "data": {"userId": "alice"}}

        status = None
        deadline = time.monotonic() + 2.0
        while time.monotonic() < deadline:
            status = client.get(f"/api/sessions/{session_id}").json()["status"]
            if status == "ended":
                break
            time.sleep(0.02)
        assert status == "ended"


class TestSessionSwitching:
    """A connection keeps its current call until a new join succeeds."""

    def _start_call(self, client: TestClient, alice, bob) -> str:
        session_id = _create_session(client)
        _join(alice, session_id, "alice")
        alice.receive_json()
        _join(bob, session_id, "bob")
        assert alice.receive_json()["event"] == "user_joined"
        assert alice.receive_json()["event"] == "call_started"
        bob.receive_json()
        bob.receive_json()
        return session_id

    def test_rejected_join_keeps_current_call(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            session_id = self._start_call(client, alice, bob)

            _join(bob, "typo", "bob")
            assert bob.receive_json() == {
                "event": "error_event",
                "data": {"message": "Session not found"},
            }

            # alice's next frame is bob's offer, not a user_left
            bob.send_json({"event": "webrtc_offer", "data": {"sessionId": session_id, "offer": OFFER}})
            assert alice.receive_json() == {
                "event": "webrtc_offer",
                "data": {"offer": OFFER, "from": "bob"},
            }

            info = client.get(f"/api/sessions/{session_id}").json()
            assert info["status"] == "active"
            assert client.get("/api/health").json()["runningSessions"] == 1

    def test_successful_join_leaves_previous_call(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            first_id = self._start_call(client, alice, bob)
            second_id = _create_session(client)

            _join(bob, second_id, "bob")
            state = bob.receive_json()
            assert state["event"] == "session_state"
            assert state["data"]["participants"] == ["bob"]

            assert alice.receive_json() == {"event": "user_left", "data": {"userId": "bob"}}
            assert client.get(f"/api/sessions/{first_id}").json()["status"] == "active"

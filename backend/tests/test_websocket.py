# tests/test_websocket.py — WebSocket handshake, rooms, health, and security headers
import pytest
from httpx import AsyncClient
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from auth import AuthService
from main import app
from realtime import board_room


def _token(user_id: str = "ws-user") -> str:
    return AuthService.create_access_token({"sub": user_id, "email": "ws@taskflow.dev", "name": "WS"})


@pytest.fixture
def ws_client():
    """Synchronous client for socket tests; the gateway needs no database"""
    yield TestClient(app)
    gateway = app.state.gateway
    for connection_id in list(gateway.registry._connections):
        gateway.handle_disconnect(connection_id)


class TestHandshake:
    def test_missing_token_closes_4001(self, ws_client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with ws_client.websocket_connect("/ws"):
                pass
        assert exc.value.code == 4001

    def test_invalid_token_closes_4001(self, ws_client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with ws_client.websocket_connect("/ws?token=not-a-jwt"):
                pass
        assert exc.value.code == 4001

    def test_refresh_token_closes_4001(self, ws_client):
        token = AuthService.create_refresh_token({"sub": "ws-user"})
        with pytest.raises(WebSocketDisconnect) as exc:
            with ws_client.websocket_connect(f"/ws?token={token}"):
                pass
        assert exc.value.code == 4001

    def test_query_token_accepted(self, ws_client):
        with ws_client.websocket_connect(f"/ws?token={_token()}") as ws:
            ws.send_json({"event": "ping"})
            assert ws.receive_json() == {"event": "pong"}

    def test_bearer_header_accepted(self, ws_client):
        headers = {"Authorization": f"Bearer {_token()}"}
        with ws_client.websocket_connect("/ws", headers=headers) as ws:
            ws.send_json({"event": "ping"})
            assert ws.receive_json() == {"event": "pong"}


class TestRooms:
    def test_join_and_leave_acks(self, ws_client):
        gateway = app.state.gateway
        with ws_client.websocket_connect(f"/ws?token={_token('joiner')}") as ws:
            ws.send_json({"event": "join:board", "data": {"boardId": "b1"}})
            assert ws.receive_json() == {"event": "joined", "boardId": "b1"}
            assert len(gateway.registry.room_members(board_room("b1"))) == 1

            ws.send_json({"event": "leave:board", "data": "b1"})
            assert ws.receive_json() == {"event": "left", "boardId": "b1"}
            assert gateway.registry.room_members(board_room("b1")) == set()

    def test_malformed_frames_are_ignored(self, ws_client):
        with ws_client.websocket_connect(f"/ws?token={_token()}") as ws:
            ws.send_text("{not json")
            ws.send_json(["a", "list"])
            ws.send_json({"event": "join:board", "data": {}})
            ws.send_json({"event": "ping"})
            assert ws.receive_json() == {"event": "pong"}


@pytest.mark.asyncio
async def test_health_endpoint(client: AsyncClient):
    """Health reports the database and realtime state"""
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["realtime"]["backend"] == "LocalBroadcastBackend"


@pytest.mark.asyncio
async def test_security_headers(client: AsyncClient):
    resp = await client.get("/api/health")
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert "x-request-id" in {k.lower() for k in resp.headers}
    assert "x-response-time" in {k.lower() for k in resp.headers}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    resp = await client.get("/api/health", headers={"X-Request-ID": "trace-123"})
    assert resp.headers["X-Request-ID"] == "trace-123"


@pytest.mark.asyncio
async def test_errors_carry_request_id(client: AsyncClient):
    resp = await client.get("/api/boards", headers={"X-Request-ID": "trace-456"})
    assert resp.status_code == 401
    body = resp.json()
    assert body["code"] == "TF-AUTH-002"
    assert body["request_id"] == "trace-456"

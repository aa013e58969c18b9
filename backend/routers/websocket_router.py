# routers/websocket_router.py — Real-time board rooms over WebSocket
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from realtime import BroadcastGateway, WebSocketConnection

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskflow.ws")


def _extract_token(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    """Explicit ``token`` query parameter first, then an ``Authorization: Bearer`` header"""
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def _board_id(data) -> Optional[str]:
    payload = data.get("data")
    if isinstance(payload, dict):
        return payload.get("boardId")
    if isinstance(payload, str):
        return payload
    return None


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
):
    """Board room subscriptions. Clients join a board's room to receive its events."""
    gateway: BroadcastGateway = websocket.app.state.gateway
    connection = WebSocketConnection(websocket)

    identity = await gateway.handle_connect(connection, _extract_token(websocket, token))
    if identity is None:
        return

    try:
        while True:
            try:
                data = json.loads(await websocket.receive_text())
            except ValueError:
                continue
            if not isinstance(data, dict):
                continue
            event = data.get("event", "")

            if event == "ping":
                await websocket.send_json({"event": "pong"})

            elif event == "join:board":
                board_id = _board_id(data)
                if board_id:
                    await websocket.send_json(gateway.join_board(connection.id, board_id))

            elif event == "leave:board":
                board_id = _board_id(data)
                if board_id:
                    await websocket.send_json(gateway.leave_board(connection.id, board_id))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        gateway.handle_disconnect(connection.id)


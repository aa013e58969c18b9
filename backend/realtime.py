# realtime.py — Board rooms, actor-excluding broadcast, pluggable fan-out
"""
Every authenticated WebSocket is tracked by connection id and identity
(user id). Clients join ``board:<id>`` rooms; mutation services publish
events to a board room after their transaction commits.

Emits never block the caller. They build an envelope and hand it to the
broadcast backend in a background task:

* ``LocalBroadcastBackend`` delivers straight to this process's sockets.
* ``RedisBroadcastBackend`` publishes the envelope on a Redis channel and
  every instance (this one included) delivers it to its own sockets.

Actor exclusion travels inside the envelope as an identity, so it holds
across instances and across every tab the actor has open.
"""
import asyncio
import enum
import json
import logging
import os
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import Request, WebSocket

from auth import AuthService
from errors import InvalidToken

logger = logging.getLogger("taskflow.realtime")

AUTH_FAILED_CLOSE_CODE = 4001
REDIS_DISABLED_URL = "memory://"
REDIS_CHANNEL = os.getenv("REDIS_BROADCAST_CHANNEL", "taskflow:broadcast")
RESUBSCRIBE_MIN_DELAY = 0.5
RESUBSCRIBE_MAX_DELAY = 30.0


def board_room(board_id: str) -> str:
    return f"board:{board_id}"


class Audience(str, enum.Enum):
    OTHERS = "others"
    EVERYONE = "everyone"


class WebSocketConnection:
    """Thin wrapper giving a socket a stable id the registry can key on"""

    def __init__(self, websocket: WebSocket):
        self.id = str(uuid.uuid4())
        self.websocket = websocket

    async def accept(self):
        await self.websocket.accept()

    async def close(self, code: int = 1000, reason: str = ""):
        await self.websocket.close(code=code, reason=reason)

    async def send_json(self, message: Dict[str, Any]):
        await self.websocket.send_json(message)


class ConnectionRegistry:
    """Connection, identity and room bookkeeping. Empty keys are pruned."""

    def __init__(self):
        self._connections: Dict[str, Any] = {}  # conn_id -> connection
        self._identity_of: Dict[str, str] = {}  # conn_id -> user_id
        self._by_identity: Dict[str, Set[str]] = {}  # user_id -> {conn_ids}
        self._rooms: Dict[str, Set[str]] = {}  # room -> {conn_ids}
        self._joined: Dict[str, Set[str]] = {}  # conn_id -> {rooms}

    def add(self, connection, identity: str):
        self._connections[connection.id] = connection
        self._identity_of[connection.id] = identity
        self._by_identity.setdefault(identity, set()).add(connection.id)

    def remove(self, connection_id: str) -> Optional[str]:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        identity = self._identity_of.pop(connection_id)
        sockets = self._by_identity.get(identity)
        if sockets is not None:
            sockets.discard(connection_id)
            if not sockets:
                del self._by_identity[identity]
        for room in self._joined.pop(connection_id, set()):
            self._discard_from_room(room, connection_id)
        return identity

    def join(self, connection_id: str, room: str):
        if connection_id not in self._connections:
            return
        self._rooms.setdefault(room, set()).add(connection_id)
        self._joined.setdefault(connection_id, set()).add(room)

    def leave(self, connection_id: str, room: str):
        self._discard_from_room(room, connection_id)
        rooms = self._joined.get(connection_id)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._joined[connection_id]

    def _discard_from_room(self, room: str, connection_id: str):
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room]

    def get(self, connection_id: str):
        return self._connections.get(connection_id)

    def identity_of(self, connection_id: str) -> Optional[str]:
        return self._identity_of.get(connection_id)

    def sockets_for(self, identity: str) -> Set[str]:
        return set(self._by_identity.get(identity, set()))

    def room_members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, set()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._joined.get(connection_id, set()))

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "identities": len(self._by_identity),
            "rooms": len(self._rooms),
        }


# ============================================================
# BACKENDS
# ============================================================

class LocalBroadcastBackend:
    """Single-process fan-out"""

    def __init__(self):
        self._gateway: Optional["BroadcastGateway"] = None

    def bind(self, gateway: "BroadcastGateway"):
        self._gateway = gateway

    async def start(self):
        pass

    async def stop(self):
        pass

    async def publish(self, envelope: Dict[str, Any]):
        if self._gateway is not None:
            await self._gateway.deliver(envelope)


def get_redis_url() -> Optional[str]:
    url = os.getenv("REDIS_URL")
    if not url or url.strip().lower() == REDIS_DISABLED_URL:
        return None
    return url.strip()


class RedisBroadcastBackend:
    """Multi-instance fan-out over Redis pub/sub"""

    def __init__(self, url: str, channel: str = REDIS_CHANNEL):
        self.url = url
        self.channel = channel
        self._client = None
        self._pubsub = None
        self._reader: Optional[asyncio.Task] = None
        self._gateway: Optional["BroadcastGateway"] = None

    def bind(self, gateway: "BroadcastGateway"):
        self._gateway = gateway

    async def start(self):
        import redis.asyncio as redis

        self._client = redis.from_url(self.url, decode_responses=True)
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.channel)
        self._reader = asyncio.create_task(self._listen())
        logger.info(f"Redis broadcast backend subscribed to {self.channel}")

    async def _listen(self):
        """Read the channel until stopped, resubscribing with backoff whenever the connection drops"""
        delay = RESUBSCRIBE_MIN_DELAY
        while True:
            try:
                async for message in self._pubsub.listen():
                    delay = RESUBSCRIBE_MIN_DELAY
                    await self._handle(message)
                return
            except Exception as e:
                logger.warning(f"Redis subscription lost: {e}; resubscribing in {delay:.1f}s")
            await asyncio.sleep(delay)
            delay = min(delay * 2, RESUBSCRIBE_MAX_DELAY)
            try:
                await self._pubsub.subscribe(self.channel)
            except Exception as e:
                logger.warning(f"Redis resubscribe to {self.channel} failed: {e}")

    async def _handle(self, message: Dict[str, Any]):
        if message.get("type") != "message":
            return
        try:
            envelope = json.loads(message["data"])
        except (TypeError, ValueError):
            logger.warning("Discarding malformed broadcast envelope")
            return
        if self._gateway is not None:
            await self._gateway.deliver(envelope)

    async def stop(self):
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def publish(self, envelope: Dict[str, Any]):
        await self._client.publish(self.channel, json.dumps(envelope))


def build_backend():
    url = get_redis_url()
    if url:
        return RedisBroadcastBackend(url)
    return LocalBroadcastBackend()


# ============================================================
# GATEWAY
# ============================================================

class BroadcastGateway:
    def __init__(self, backend=None):
        self.registry = ConnectionRegistry()
        self.backend = backend or LocalBroadcastBackend()
        self.backend.bind(self)
        self._pending: Set[asyncio.Task] = set()

    async def start(self):
        await self.backend.start()

    async def stop(self):
        await self.flush()
        await self.backend.stop()

    # -- connection lifecycle --

    async def handle_connect(self, connection, token: Optional[str]) -> Optional[str]:
        """Authenticate and register a socket. Returns the identity, or None after closing with 4001."""
        if not token:
            logger.info("WS rejected: no token")
            await connection.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
            return None
        try:
            claims = AuthService.verify_access_token(token)
        except InvalidToken:
            logger.info("WS rejected: invalid token")
            await connection.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
            return None

        identity = claims["sub"]
        await connection.accept()
        self.registry.add(connection, identity)
        logger.info(f"WS connected: user={identity[:8]} conn={connection.id[:8]}")
        return identity

    def handle_disconnect(self, connection_id: str):
        identity = self.registry.remove(connection_id)
        if identity is not None:
            logger.info(f"WS disconnected: user={identity[:8]} conn={connection_id[:8]}")

    def join_board(self, connection_id: str, board_id: str) -> Dict[str, Any]:
        self.registry.join(connection_id, board_room(board_id))
        return {"event": "joined", "boardId": board_id}

    def leave_board(self, connection_id: str, board_id: str) -> Dict[str, Any]:
        self.registry.leave(connection_id, board_room(board_id))
        return {"event": "left", "boardId": board_id}

    def get_sockets_for_identity(self, identity: str) -> Set[str]:
        return self.registry.sockets_for(identity)

    # -- emitting --

    def emit_to_board(self, board_id: str, event: str, payload: Any):
        self._schedule(self._envelope(board_id, event, payload, None))

    def emit_to_board_except(self, board_id: str, event: str, payload: Any, exclude_identity: Optional[str] = None):
        """Every socket in the room except those belonging to ``exclude_identity``.

        Falls back to a plain room broadcast when no identity is given.
        """
        self._schedule(self._envelope(board_id, event, payload, exclude_identity))

    def publish(self, board_id: str, event: str, payload: Any, actor_id: Optional[str], audience: Audience = Audience.OTHERS):
        if audience == Audience.EVERYONE:
            self.emit_to_board(board_id, event, payload)
        else:
            self.emit_to_board_except(board_id, event, payload, exclude_identity=actor_id)

    @staticmethod
    def _envelope(board_id: str, event: str, payload: Any, exclude: Optional[str]) -> Dict[str, Any]:
        return {"room": board_room(board_id), "event": event, "data": payload, "exclude": exclude}

    def _schedule(self, envelope: Dict[str, Any]):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop, dropping {envelope['event']} for {envelope['room']}")
            return
        task = loop.create_task(self._publish(envelope))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, envelope: Dict[str, Any]):
        try:
            await self.backend.publish(envelope)
        except Exception as e:
            logger.error(f"Broadcast of {envelope['event']} to {envelope['room']} failed: {e}")

    async def flush(self):
        """Wait for every emit issued so far to be handed off and delivered locally"""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def deliver(self, envelope: Dict[str, Any]):
        """Send an envelope to this instance's sockets in its room"""
        room = envelope.get("room")
        exclude = envelope.get("exclude")
        message = {"event": envelope.get("event"), "data": envelope.get("data")}

        for connection_id in self.registry.room_members(room):
            if exclude and self.registry.identity_of(connection_id) == exclude:
                continue
            connection = self.registry.get(connection_id)
            if connection is None:
                continue
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"WS send failed conn={connection_id[:8]}: {e}")
                self.handle_disconnect(connection_id)

    def get_stats(self) -> dict:
        stats = self.registry.get_stats()
        stats["backend"] = type(self.backend).__name__
        return stats


def get_gateway(request: Request) -> BroadcastGateway:
    """FastAPI dependency: the gateway owned by the running app"""
    return request.app.state.gateway

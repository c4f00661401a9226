"""
Real-time fan-out over Redis pub/sub
====================================

API processes never hold sockets for one another: every emit is published
to a Redis channel ``rt:<room>`` and each process relays the channels it
cares about to its own WebSocket clients.

Rooms
-----
* ``user:{id}``      -- personal channel, auto-joined on connect
* ``booking:{id}``   -- booking tracking (customer + assigned provider)
* ``delivery:{id}``  -- delivery tracking

Publishing is best effort.  A Redis outage is logged and never fails the
request that triggered the event.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from src.infrastructure.database import utcnow

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "rt:"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def booking_room(booking_id: int) -> str:
    return f"booking:{booking_id}"


def delivery_room(delivery_id: int) -> str:
    return f"delivery:{delivery_id}"


class RealtimeBroadcaster:
    """Publishes ``{room, event, data}`` envelopes to Redis."""

    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def emit_to_room(self, room: str, event: str, data: dict[str, Any]) -> None:
        payload = json.dumps(
            {
                "room": room,
                "event": event,
                "data": jsonable_encoder(data),
                "timestamp": utcnow().isoformat(),
            }
        )
        try:
            await self.redis.publish(f"{CHANNEL_PREFIX}{room}", payload)
        except (aioredis.RedisError, OSError) as exc:
            logger.warning("Realtime publish to %s failed: %s", room, exc)

    async def notify_user(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        await self.emit_to_room(user_room(user_id), event, data)


# ── WebSocket side ────────────────────────────────────────────────────


@dataclass
class ConnectionInfo:
    websocket: WebSocket
    user_id: int
    role: str
    connected_at: datetime = field(default_factory=utcnow)
    rooms: set[str] = field(default_factory=set)


class ConnectionManager:
    """
    Tracks sockets of this process and the rooms they joined.

    One socket per user; a reconnect replaces the previous socket.
    """

    def __init__(self) -> None:
        self._connections: dict[int, ConnectionInfo] = {}
        self._rooms: dict[str, set[int]] = {}

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, user_id: int, role: str) -> None:
        previous = self._connections.get(user_id)
        if previous is not None:
            await self.disconnect(user_id)
            try:
                await previous.websocket.close()
            except RuntimeError:
                pass

        await websocket.accept()
        self._connections[user_id] = ConnectionInfo(websocket, user_id, role)
        self.join(user_id, user_room(user_id))

    async def disconnect(
        self, user_id: int, websocket: Optional[WebSocket] = None
    ) -> None:
        """Drop the user's socket; with *websocket*, only if it is still current."""
        conn = self._connections.get(user_id)
        if conn is None or (websocket is not None and conn.websocket is not websocket):
            return
        del self._connections[user_id]
        for room in list(conn.rooms):
            self._leave_room(user_id, room)

    def join(self, user_id: int, room: str) -> None:
        conn = self._connections.get(user_id)
        if conn is None:
            return
        conn.rooms.add(room)
        self._rooms.setdefault(room, set()).add(user_id)

    def leave(self, user_id: int, room: str) -> None:
        conn = self._connections.get(user_id)
        if conn is not None:
            conn.rooms.discard(room)
        self._leave_room(user_id, room)

    def _leave_room(self, user_id: int, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(user_id)
        if not members:
            del self._rooms[room]

    def members(self, room: str) -> set[int]:
        return set(self._rooms.get(room, set()))

    async def broadcast(self, room: str, message: dict[str, Any]) -> int:
        sent = 0
        dead: list[int] = []
        for user_id in self.members(room):
            conn = self._connections.get(user_id)
            if conn is None:
                continue
            try:
                await conn.websocket.send_json(message)
                sent += 1
            except (RuntimeError, OSError):
                dead.append(user_id)

        for user_id in dead:
            await self.disconnect(user_id)
        return sent

    def stats(self) -> dict[str, Any]:
        by_role: dict[str, int] = {}
        for conn in self._connections.values():
            by_role[conn.role] = by_role.get(conn.role, 0) + 1
        return {
            "active_connections": len(self._connections),
            "rooms": len(self._rooms),
            "connections_by_role": by_role,
        }


manager = ConnectionManager()


# ── Redis -> WebSocket relay ──────────────────────────────────────────

_relay_task: Optional[asyncio.Task] = None


async def _relay(client: aioredis.Redis, conn_manager: ConnectionManager) -> None:
    pubsub = client.pubsub()
    await pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
    logger.info("Realtime relay subscribed to %s*", CHANNEL_PREFIX)
    try:
        async for message in pubsub.listen():
            if message.get("type") != "pmessage":
                continue
            try:
                envelope = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("Dropping malformed realtime message")
                continue
            await conn_manager.broadcast(envelope.get("room", ""), envelope)
    finally:
        await pubsub.aclose()


async def start_relay(client: aioredis.Redis) -> None:
    global _relay_task
    _relay_task = asyncio.create_task(_relay(client, manager))


async def stop_relay() -> None:
    global _relay_task
    if _relay_task:
        _relay_task.cancel()
        try:
            await _relay_task
        except asyncio.CancelledError:
            pass
        except (aioredis.RedisError, OSError):
            logger.warning("Realtime relay stopped with a Redis error")
    _relay_task = None

"""
WebSocket endpoint
==================

``/ws?token=<jwt>`` -- authenticates with the same bearer token as the REST
API, auto-joins ``user:{id}`` and then accepts JSON control messages::

    {"action": "join",  "room": "booking:42"}
    {"action": "leave", "room": "booking:42"}
    {"action": "ping"}

Only participants of a booking / delivery (or admins) may join its room.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from src.api.security import decode_token
from src.domain.enums import ADMIN_ROLES
from src.infrastructure.database import async_session_factory, utcnow
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import (
    BookingRepository,
    DeliveryRepository,
    UserRepository,
)
from src.services.realtime import manager, user_room

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008


async def _authenticate(token: Optional[str]) -> Optional[UserModel]:
    user_id = decode_token(token) if token else None
    if user_id is None:
        return None
    async with async_session_factory() as session:
        user = await UserRepository(session).get_by_id(user_id)
    if user is None or not user.is_active:
        return None
    return user


async def can_join(user: UserModel, room: str) -> bool:
    kind, _, raw_id = room.partition(":")
    if kind == "user":
        return room == user_room(user.id)
    if not raw_id.isdigit():
        return False
    if user.role in ADMIN_ROLES:
        return kind in ("booking", "delivery")

    async with async_session_factory() as session:
        if kind == "booking":
            booking = await BookingRepository(session).get_by_id(int(raw_id))
            return booking is not None and user.id in (
                booking.customer_id,
                booking.provider_id,
            )
        if kind == "delivery":
            delivery = await DeliveryRepository(session).get_by_id(int(raw_id))
            return delivery is not None and user.id in (
                delivery.customer_id,
                delivery.rider_id,
            )
    return False


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    user = await _authenticate(token)
    if user is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await manager.connect(websocket, user.id, user.role.value)
    logger.info("WebSocket connected: user %s (%s)", user.id, user.role.value)
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                message = {}
            action = message.get("action")
            room = str(message.get("room", ""))

            if action == "join":
                if await can_join(user, room):
                    manager.join(user.id, room)
                    await websocket.send_json({"event": "joined", "room": room})
                else:
                    await websocket.send_json(
                        {"event": "error", "message": f"Cannot join {room}"}
                    )
            elif action == "leave":
                manager.leave(user.id, room)
                await websocket.send_json({"event": "left", "room": room})
            elif action == "ping":
                await websocket.send_json(
                    {"event": "pong", "timestamp": utcnow().isoformat()}
                )
            else:
                await websocket.send_json(
                    {"event": "error", "message": f"Unknown action {action!r}"}
                )
    except WebSocketDisconnect:
        pass
    except ValueError:
        logger.warning("WebSocket %s sent malformed JSON", user.id)
    finally:
        await manager.disconnect(user.id, websocket)
        logger.info("WebSocket disconnected: user %s", user.id)

"""WebSocket endpoint that streams change events and presence to clients."""
from __future__ import annotations

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..services import change_feed, presence_frame, presence_registry, resolve_token_user
from ..services.change_feed import ChangeFeed
from ..services.presence import PresenceRegistry

router = APIRouter(prefix="/realtime", tags=["realtime"])
logger = logging.getLogger(__name__)


async def release_socket(
    websocket: WebSocket,
    user_id: UUID,
    *,
    feed: ChangeFeed = change_feed,
    registry: PresenceRegistry = presence_registry,
) -> None:
    """Forget ``websocket`` and announce a leave once ``user_id`` has no live sockets left."""

    # The feed may already have dropped the socket after a failed send.
    await feed.disconnect(websocket)
    if feed.is_connected(user_id):
        return
    left = await registry.leave(user_id)
    if left is not None:
        await feed.broadcast(presence_frame("leave", [left]))


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str = Query(..., alias="token"),
    db: Session = Depends(get_session),
) -> None:
    """Authenticate, join presence and relay change events until the client disconnects."""

    try:
        user = resolve_token_user(db, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        db.close()

    user_id = user.id
    await websocket.accept()
    await change_feed.connect(user_id, websocket)
    logger.info("Realtime socket connected for %s", user_id)

    joined = await presence_registry.join(user_id)
    await websocket.send_text(json.dumps(presence_frame("sync", presence_registry.snapshot())))
    if joined is not None:
        await change_feed.broadcast(presence_frame("join", [joined]))

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = {"type": raw}
            message_type = str(payload.get("type") or "").strip().lower() if isinstance(payload, dict) else ""
            if message_type == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    finally:
        await release_socket(websocket, user_id)
        logger.info("Realtime socket disconnected for %s", user_id)


__all__ = ["release_socket", "router"]

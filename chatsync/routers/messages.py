"""Routes acting on individual messages."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import (
    MessageActionResponse,
    MessageEditRequest,
    MessageResponse,
    MessageStatusResponse,
    ReactionRequest,
    ReactionResponse,
    UnreadCountResponse,
)
from ..services import (
    count_unread_messages,
    delete_message_for_everyone,
    edit_message,
    get_current_user,
    get_message_status,
    hide_message_for_user,
    remove_reaction,
    set_reaction,
)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count_endpoint(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=count_unread_messages(db, requester=current_user))


@router.patch("/{message_id}", response_model=MessageResponse)
async def edit_message_endpoint(
    message_id: UUID,
    payload: MessageEditRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    return edit_message(db, requester=current_user, message_id=message_id, content=payload.content)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_for_everyone_endpoint(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    return delete_message_for_everyone(db, requester=current_user, message_id=message_id)


@router.post("/{message_id}/hide", response_model=MessageActionResponse)
async def delete_for_me_endpoint(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageActionResponse:
    success = hide_message_for_user(db, requester=current_user, message_id=message_id)
    return MessageActionResponse(message_id=message_id, success=success)


@router.get("/{message_id}/status", response_model=MessageStatusResponse)
async def message_status_endpoint(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageStatusResponse:
    return MessageStatusResponse(message_id=message_id, status=get_message_status(db, message_id))


@router.put("/{message_id}/reactions", response_model=ReactionResponse)
async def set_reaction_endpoint(
    message_id: UUID,
    payload: ReactionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ReactionResponse:
    return set_reaction(db, requester=current_user, message_id=message_id, emoji=payload.emoji)


@router.delete("/{message_id}/reactions", response_model=MessageActionResponse)
async def remove_reaction_endpoint(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageActionResponse:
    success = remove_reaction(db, requester=current_user, message_id=message_id)
    return MessageActionResponse(message_id=message_id, success=success)


__all__ = ["router"]

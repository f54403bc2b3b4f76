"""Conversation list, lifecycle and per-conversation message routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import (
    ConversationActionResponse,
    ConversationCreatedResponse,
    ConversationFilter,
    ConversationResponse,
    DirectConversationCreate,
    GroupCreate,
    MessageResponse,
    MessageSendRequest,
    MessageThreadResponse,
    MuteConversationRequest,
)
from ..services import (
    clear_messages_for_user,
    create_direct_conversation,
    create_group,
    get_current_user,
    hide_conversation_for_user,
    leave_group_for_user,
    list_messages,
    list_user_conversations,
    mark_messages_delivered,
    mark_messages_read,
    send_message,
    set_conversation_muted,
)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("", response_model=list[ConversationResponse])
async def list_conversations_endpoint(
    filter_: ConversationFilter = Query(ConversationFilter.ALL, alias="filter"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[ConversationResponse]:
    return list_user_conversations(db, requester=current_user, filter_=filter_)


@router.post("/direct", response_model=ConversationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_direct_endpoint(
    payload: DirectConversationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationCreatedResponse:
    conversation = create_direct_conversation(db, requester=current_user, other_user_id=payload.participant_id)
    return ConversationCreatedResponse(conversation_id=conversation.id)


@router.post("/groups", response_model=ConversationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_group_endpoint(
    payload: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationCreatedResponse:
    conversation = create_group(
        db,
        requester=current_user,
        name=payload.name,
        participant_ids=payload.participant_ids,
        image_url=payload.image_url,
    )
    return ConversationCreatedResponse(conversation_id=conversation.id)


@router.post("/{conversation_id}/hide", response_model=ConversationActionResponse)
async def hide_conversation_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = hide_conversation_for_user(db, requester=current_user, conversation_id=conversation_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.post("/{conversation_id}/leave", response_model=ConversationActionResponse)
async def leave_group_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = leave_group_for_user(db, requester=current_user, conversation_id=conversation_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.put("/{conversation_id}/mute", response_model=ConversationActionResponse)
async def mute_conversation_endpoint(
    conversation_id: UUID,
    payload: MuteConversationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = set_conversation_muted(db, requester=current_user, conversation_id=conversation_id, muted=payload.muted)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.get("/{conversation_id}/messages", response_model=MessageThreadResponse)
async def list_messages_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageThreadResponse:
    messages = list_messages(db, requester=current_user, conversation_id=conversation_id)
    return MessageThreadResponse(conversation_id=conversation_id, messages=messages)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
    conversation_id: UUID,
    payload: MessageSendRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    return send_message(
        db,
        requester=current_user,
        conversation_id=conversation_id,
        content=payload.content,
        images=payload.images,
        shared_post=payload.shared_post,
    )


@router.post("/{conversation_id}/delivered", response_model=ConversationActionResponse)
async def mark_delivered_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    mark_messages_delivered(db, requester=current_user, conversation_id=conversation_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=True)


@router.post("/{conversation_id}/read", response_model=ConversationActionResponse)
async def mark_read_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    mark_messages_read(db, requester=current_user, conversation_id=conversation_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=True)


@router.post("/{conversation_id}/clear", response_model=ConversationActionResponse)
async def clear_messages_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    clear_messages_for_user(db, requester=current_user, conversation_id=conversation_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=True)


__all__ = ["router"]

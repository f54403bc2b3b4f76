"""Group administration routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import (
    ConversationActionResponse,
    GroupDetailResponse,
    GroupInfo,
    GroupMembershipResponse,
    GroupParticipantsRequest,
    GroupRenameRequest,
)
from ..services import (
    add_participants,
    get_current_user,
    get_group_details,
    make_admin,
    remove_admin,
    remove_participant,
    update_group_name,
)

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("/{conversation_id}", response_model=GroupDetailResponse)
async def group_details_endpoint(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> GroupDetailResponse:
    return get_group_details(db, requester=current_user, conversation_id=conversation_id)


@router.post("/{conversation_id}/participants", response_model=GroupMembershipResponse)
async def add_participants_endpoint(
    conversation_id: UUID,
    payload: GroupParticipantsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> GroupMembershipResponse:
    added = add_participants(db, requester=current_user, conversation_id=conversation_id, user_ids=payload.user_ids)
    return GroupMembershipResponse(conversation_id=conversation_id, user_ids=added)


@router.delete("/{conversation_id}/participants/{user_id}", response_model=ConversationActionResponse)
async def remove_participant_endpoint(
    conversation_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = remove_participant(db, requester=current_user, conversation_id=conversation_id, user_id=user_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.post("/{conversation_id}/admins/{user_id}", response_model=ConversationActionResponse)
async def make_admin_endpoint(
    conversation_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = make_admin(db, requester=current_user, conversation_id=conversation_id, user_id=user_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.delete("/{conversation_id}/admins/{user_id}", response_model=ConversationActionResponse)
async def remove_admin_endpoint(
    conversation_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ConversationActionResponse:
    success = remove_admin(db, requester=current_user, conversation_id=conversation_id, user_id=user_id)
    return ConversationActionResponse(conversation_id=conversation_id, success=success)


@router.put("/{conversation_id}/name", response_model=GroupInfo)
async def rename_group_endpoint(
    conversation_id: UUID,
    payload: GroupRenameRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> GroupInfo:
    conversation = update_group_name(db, requester=current_user, conversation_id=conversation_id, name=payload.name)
    return GroupInfo(
        id=conversation.id,
        name=conversation.name,
        image_url=conversation.image_url,
        is_group=True,
        created_at=conversation.created_at,
        created_by=conversation.created_by,
    )


__all__ = ["router"]

"""Muted user routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import MuteActionResponse, MutedUserListResponse, MutedUserResponse
from ..services import get_current_user, list_muted_users, mute_user, unmute_user

router = APIRouter(prefix="/mutes", tags=["mutes"])


@router.get("", response_model=MutedUserListResponse)
async def list_mutes_endpoint(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MutedUserListResponse:
    return MutedUserListResponse(items=list_muted_users(db, requester=current_user))


@router.put("/{user_id}", response_model=MutedUserResponse)
async def mute_user_endpoint(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MutedUserResponse:
    return mute_user(db, requester=current_user, user_id=user_id)


@router.delete("/{user_id}", response_model=MuteActionResponse)
async def unmute_user_endpoint(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MuteActionResponse:
    return MuteActionResponse(user_id=user_id, success=unmute_user(db, requester=current_user, user_id=user_id))


__all__ = ["router"]

"""Muting other users so their messages stop counting as unread."""
from __future__ import annotations

import logging
from typing import List
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..models import MutedUser, User
from ..schemas import ChangeType, MutedUserResponse
from .change_feed import row_to_record, schedule_change
from .conversation_service import commit_or_500, load_users, to_profile

logger = logging.getLogger(__name__)


def _to_response(entry: MutedUser) -> MutedUserResponse:
    return MutedUserResponse(
        id=entry.id,
        muted_user_id=entry.muted_user_id,
        created_at=entry.created_at,
        user=to_profile(entry.muted_user),
    )


def list_muted_users(db: Session, *, requester: User) -> List[MutedUserResponse]:
    stmt = (
        select(MutedUser)
        .where(MutedUser.user_id == requester.id)
        .options(selectinload(MutedUser.muted_user))
        .order_by(MutedUser.created_at.desc())
    )
    return [_to_response(entry) for entry in db.scalars(stmt)]


def muted_user_ids(db: Session, user_id: UUID) -> set[UUID]:
    return set(db.scalars(select(MutedUser.muted_user_id).where(MutedUser.user_id == user_id)))


def mute_user(db: Session, *, requester: User, user_id: UUID) -> MutedUserResponse:
    if user_id == requester.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot mute yourself")
    load_users(db, [user_id])

    existing = db.scalar(
        select(MutedUser).where(MutedUser.user_id == requester.id, MutedUser.muted_user_id == user_id)
    )
    if existing is not None:
        return _to_response(existing)

    entry = MutedUser(user_id=requester.id, muted_user_id=user_id)
    db.add(entry)
    commit_or_500(db, "Failed to mute user")
    logger.info("User %s muted %s", requester.id, user_id)
    schedule_change("muted_users", ChangeType.INSERT, entry, audience={requester.id})
    return _to_response(entry)


def unmute_user(db: Session, *, requester: User, user_id: UUID) -> bool:
    entry = db.scalar(
        select(MutedUser).where(MutedUser.user_id == requester.id, MutedUser.muted_user_id == user_id)
    )
    if entry is None:
        return False
    old_record = row_to_record(entry)
    db.delete(entry)
    commit_or_500(db, "Failed to unmute user")
    logger.info("User %s unmuted %s", requester.id, user_id)
    schedule_change("muted_users", ChangeType.DELETE, None, audience={requester.id}, old_record=old_record)
    return True


__all__ = ["list_muted_users", "muted_user_ids", "mute_user", "unmute_user"]

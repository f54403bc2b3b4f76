"""Group administration: membership, roles, naming and history."""
from __future__ import annotations

import logging
from typing import List, Sequence
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..models import Conversation, GroupAction, GroupHistory, Participant, ParticipantRole, User
from ..models.base import utcnow
from ..schemas import ChangeType, GroupDetailResponse, GroupHistoryEntry, GroupInfo
from .change_feed import schedule_change
from .conversation_service import (
    commit_or_500,
    conversation_audience,
    get_conversation_or_404,
    load_users,
    record_history,
    require_participant,
    to_participant_response,
    to_profile,
)

logger = logging.getLogger(__name__)


def _ensure_group(db: Session, conversation_id: UUID, requester: User) -> tuple[Conversation, Participant]:
    conversation = get_conversation_or_404(db, conversation_id)
    if not conversation.is_group:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Conversation is not a group")
    return conversation, require_participant(conversation, requester.id)


def _ensure_group_admin(db: Session, conversation_id: UUID, requester: User) -> Conversation:
    conversation, participant = _ensure_group(db, conversation_id, requester)
    if not participant.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only group admins can do that")
    return conversation


def _active_target(conversation: Conversation, user_id: UUID) -> Participant:
    target = conversation.participant_for(user_id)
    if target is None or not target.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not a member of this group")
    return target


def _publish(
    conversation: Conversation,
    audience: set[UUID],
    participants: Sequence[tuple[Participant, ChangeType]],
    entries: Sequence[GroupHistory],
) -> None:
    for participant, event in participants:
        schedule_change("participants", event, participant, audience=audience, conversation_id=conversation.id)
    for entry in entries:
        schedule_change("group_history", ChangeType.INSERT, entry, audience=audience, conversation_id=conversation.id)


def _to_history_entry(entry: GroupHistory) -> GroupHistoryEntry:
    return GroupHistoryEntry(
        id=entry.id,
        action_type=entry.action_type,
        performed_by=entry.performed_by,
        affected_user_id=entry.affected_user_id,
        old_value=entry.old_value,
        new_value=entry.new_value,
        created_at=entry.created_at,
        performer=to_profile(entry.performer),
        affected=to_profile(entry.affected),
    )


def get_group_details(db: Session, *, requester: User, conversation_id: UUID) -> GroupDetailResponse:
    conversation, participant = _ensure_group(db, conversation_id, requester)
    stmt = (
        select(GroupHistory)
        .where(GroupHistory.conversation_id == conversation.id)
        .options(selectinload(GroupHistory.performer), selectinload(GroupHistory.affected))
        .order_by(GroupHistory.created_at.desc())
        .limit(get_settings().group_history_limit)
    )
    return GroupDetailResponse(
        group=GroupInfo(
            id=conversation.id,
            name=conversation.name,
            image_url=conversation.image_url,
            is_group=True,
            created_at=conversation.created_at,
            created_by=conversation.created_by,
        ),
        participants=[to_participant_response(p) for p in conversation.active_participants()],
        history=[_to_history_entry(entry) for entry in db.scalars(stmt)],
        is_admin=participant.is_admin,
    )


def add_participants(db: Session, *, requester: User, conversation_id: UUID, user_ids: Sequence[UUID]) -> List[UUID]:
    """Add or re-activate members. Returns the ids that actually joined."""

    conversation = _ensure_group_admin(db, conversation_id, requester)
    load_users(db, user_ids)

    changed: list[tuple[Participant, ChangeType]] = []
    entries: list[GroupHistory] = []
    added: list[UUID] = []
    for user_id in dict.fromkeys(user_ids):
        existing = conversation.participant_for(user_id)
        if existing is not None and existing.is_active:
            continue
        if existing is None:
            participant = Participant(user_id=user_id, role=ParticipantRole.MEMBER.value, created_at=utcnow())
            conversation.participants.append(participant)
            changed.append((participant, ChangeType.INSERT))
        else:
            existing.hidden_at = None
            existing.created_at = utcnow()
            existing.hidden_from_all_chats = False
            existing.role = ParticipantRole.MEMBER.value
            changed.append((existing, ChangeType.UPDATE))
        entries.append(
            record_history(db, conversation, GroupAction.MEMBER_ADDED, performed_by=requester.id, affected_user_id=user_id)
        )
        added.append(user_id)

    if not added:
        return []
    commit_or_500(db, "Failed to add participants")
    logger.info("Added %d participant(s) to group %s", len(added), conversation.id)
    _publish(conversation, conversation_audience(conversation), changed, entries)
    return added


def remove_participant(db: Session, *, requester: User, conversation_id: UUID, user_id: UUID) -> bool:
    """Remove a member, promoting the longest-standing member if the group would lose its last admin."""

    conversation = _ensure_group_admin(db, conversation_id, requester)
    target = _active_target(conversation, user_id)
    audience = conversation_audience(conversation)

    changed: list[tuple[Participant, ChangeType]] = []
    entries: list[GroupHistory] = []
    if target.is_admin:
        admins = [p for p in conversation.active_participants() if p.is_admin]
        if len(admins) == 1:
            successor = next((p for p in conversation.active_participants() if p.user_id != user_id), None)
            if successor is not None:
                successor.role = ParticipantRole.ADMIN.value
                changed.append((successor, ChangeType.UPDATE))
                entries.append(
                    record_history(
                        db,
                        conversation,
                        GroupAction.ADMIN_PROMOTED,
                        performed_by=requester.id,
                        affected_user_id=successor.user_id,
                    )
                )

    target.hidden_at = utcnow()
    changed.append((target, ChangeType.UPDATE))
    entries.append(
        record_history(db, conversation, GroupAction.MEMBER_REMOVED, performed_by=requester.id, affected_user_id=user_id)
    )
    commit_or_500(db, "Failed to remove participant")
    logger.info("Removed %s from group %s", user_id, conversation.id)
    _publish(conversation, audience, changed, entries)
    return True


def make_admin(db: Session, *, requester: User, conversation_id: UUID, user_id: UUID) -> bool:
    conversation = _ensure_group_admin(db, conversation_id, requester)
    target = _active_target(conversation, user_id)
    if target.is_admin:
        return True
    target.role = ParticipantRole.ADMIN.value
    entry = record_history(db, conversation, GroupAction.ADMIN_PROMOTED, performed_by=requester.id, affected_user_id=user_id)
    commit_or_500(db, "Failed to promote participant")
    _publish(conversation, conversation_audience(conversation), [(target, ChangeType.UPDATE)], [entry])
    return True


def remove_admin(db: Session, *, requester: User, conversation_id: UUID, user_id: UUID) -> bool:
    conversation = _ensure_group_admin(db, conversation_id, requester)
    target = _active_target(conversation, user_id)
    if not target.is_admin:
        return True
    admins = [p for p in conversation.active_participants() if p.is_admin]
    if len(admins) <= 1:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A group needs at least one admin")
    target.role = ParticipantRole.MEMBER.value
    entry = record_history(db, conversation, GroupAction.ADMIN_DEMOTED, performed_by=requester.id, affected_user_id=user_id)
    commit_or_500(db, "Failed to demote admin")
    _publish(conversation, conversation_audience(conversation), [(target, ChangeType.UPDATE)], [entry])
    return True


def update_group_name(db: Session, *, requester: User, conversation_id: UUID, name: str) -> Conversation:
    conversation = _ensure_group_admin(db, conversation_id, requester)
    cleaned = (name or "").strip()
    if not cleaned:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group name is required")
    if cleaned == conversation.name:
        return conversation

    entry = record_history(
        db,
        conversation,
        GroupAction.NAME_CHANGED,
        performed_by=requester.id,
        old_value=conversation.name,
        new_value=cleaned,
    )
    conversation.name = cleaned
    conversation.updated_at = utcnow()
    commit_or_500(db, "Failed to rename group")

    audience = conversation_audience(conversation)
    schedule_change("conversations", ChangeType.UPDATE, conversation, audience=audience, conversation_id=conversation.id)
    _publish(conversation, audience, [], [entry])
    return conversation


__all__ = [
    "get_group_details",
    "add_participants",
    "remove_participant",
    "make_admin",
    "remove_admin",
    "update_group_name",
]

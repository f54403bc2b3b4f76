"""Conversation list and lifecycle services."""
from __future__ import annotations

import logging
from typing import Iterable, Sequence
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models import (
    Conversation,
    GroupAction,
    GroupHistory,
    Message,
    MessageReceipt,
    Participant,
    ParticipantRole,
    User,
)
from ..models.base import utcnow
from ..schemas import (
    ChangeType,
    ConversationFilter,
    ConversationResponse,
    LastMessagePreview,
    ParticipantResponse,
    ProfileSummary,
)
from .change_feed import row_to_record, schedule_change

logger = logging.getLogger(__name__)


def commit_or_500(db: Session, detail: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail) from exc


def get_conversation_or_404(db: Session, conversation_id: UUID) -> Conversation:
    stmt = (
        select(Conversation)
        .where(Conversation.id == conversation_id)
        .options(selectinload(Conversation.participants).selectinload(Participant.user))
    )
    conversation = db.scalar(stmt)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


def require_participant(conversation: Conversation, user_id: UUID, *, active: bool = True) -> Participant:
    participant = conversation.participant_for(user_id)
    if participant is None or (active and not participant.is_active):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not part of this conversation")
    return participant


def conversation_audience(conversation: Conversation, *extra: UUID | None) -> set[UUID]:
    audience = {participant.user_id for participant in conversation.active_participants()}
    audience.update(user_id for user_id in extra if user_id is not None)
    return audience


def record_history(
    db: Session,
    conversation: Conversation,
    action: GroupAction,
    *,
    performed_by: UUID | None,
    affected_user_id: UUID | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
) -> GroupHistory:
    entry = GroupHistory(
        conversation_id=conversation.id,
        action_type=action.value,
        performed_by=performed_by,
        affected_user_id=affected_user_id,
        old_value=old_value,
        new_value=new_value,
        created_at=utcnow(),
    )
    db.add(entry)
    return entry


def load_users(db: Session, user_ids: Iterable[UUID]) -> dict[UUID, User]:
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return {}
    users = {user.id: user for user in db.scalars(select(User).where(User.id.in_(wanted)))}
    missing = [str(user_id) for user_id in wanted if user_id not in users]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found: {', '.join(missing)}")
    return users


def to_profile(user: User | None) -> ProfileSummary | None:
    if user is None:
        return None
    return ProfileSummary.model_validate(user)


def to_participant_response(participant: Participant) -> ParticipantResponse:
    return ParticipantResponse(
        user_id=participant.user_id,
        role=participant.role,
        muted=bool(participant.muted),
        joined_at=participant.created_at,
        profile=to_profile(participant.user),
    )


_PREVIEW_BATCH = 25


def _last_visible_message(
    db: Session, conversation_id: UUID, viewer_id: UUID, *, offset: int = 0
) -> Message | None:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id, Message.deleted_at.is_(None))
        .options(selectinload(Message.sender))
        .order_by(Message.created_at.desc())
        .limit(_PREVIEW_BATCH)
    )
    while True:
        batch = db.scalars(stmt.offset(offset)).all()
        for message in batch:
            if not message.is_hidden_for(viewer_id):
                return message
        if len(batch) < _PREVIEW_BATCH:
            return None
        offset += _PREVIEW_BATCH


def last_visible_messages(db: Session, conversation_ids: Sequence[UUID], viewer_id: UUID) -> dict[UUID, Message]:
    """Newest message per conversation that ``viewer_id`` has not hidden, in one windowed query.

    Only conversations whose latest batch is entirely hidden need a follow-up page.
    """

    if not conversation_ids:
        return {}
    recency = (
        func.row_number()
        .over(partition_by=Message.conversation_id, order_by=Message.created_at.desc())
        .label("recency")
    )
    ranked = (
        select(Message.id, recency)
        .where(Message.conversation_id.in_(list(conversation_ids)), Message.deleted_at.is_(None))
        .subquery()
    )
    stmt = (
        select(Message)
        .join(ranked, ranked.c.id == Message.id)
        .where(ranked.c.recency <= _PREVIEW_BATCH)
        .options(selectinload(Message.sender))
        .order_by(Message.created_at.desc())
    )

    found: dict[UUID, Message] = {}
    scanned: dict[UUID, int] = {}
    for message in db.scalars(stmt):
        scanned[message.conversation_id] = scanned.get(message.conversation_id, 0) + 1
        if message.conversation_id in found or message.is_hidden_for(viewer_id):
            continue
        found[message.conversation_id] = message

    for conversation_id, total in scanned.items():
        if conversation_id not in found and total == _PREVIEW_BATCH:
            older = _last_visible_message(db, conversation_id, viewer_id, offset=_PREVIEW_BATCH)
            if older is not None:
                found[conversation_id] = older
    return found


def unread_counts_by_conversation(
    db: Session,
    viewer_id: UUID,
    conversation_ids: Sequence[UUID],
    *,
    muted_sender_ids: Iterable[UUID] = (),
) -> dict[UUID, int]:
    """Count messages from others without a read receipt from ``viewer_id``."""

    if not conversation_ids:
        return {}
    stmt = (
        select(Message.conversation_id, Message.sender_id, Message.hidden_by)
        .outerjoin(
            MessageReceipt,
            and_(MessageReceipt.message_id == Message.id, MessageReceipt.user_id == viewer_id),
        )
        .where(
            Message.conversation_id.in_(list(conversation_ids)),
            or_(Message.sender_id.is_(None), Message.sender_id != viewer_id),
            Message.deleted_at.is_(None),
            MessageReceipt.read_at.is_(None),
        )
    )
    muted = set(muted_sender_ids)
    viewer_key = str(viewer_id)
    counts: dict[UUID, int] = {}
    for conversation_id, sender_id, hidden_by in db.execute(stmt):
        if sender_id in muted or viewer_key in (hidden_by or []):
            continue
        counts[conversation_id] = counts.get(conversation_id, 0) + 1
    return counts


def _to_preview(message: Message | None) -> LastMessagePreview | None:
    if message is None:
        return None
    return LastMessagePreview(
        id=message.id,
        content=message.content or "",
        images=list(message.images or []),
        shared_post=message.shared_post,
        created_at=message.created_at,
        sender_id=message.sender_id,
        sender=to_profile(message.sender),
    )


def _matches_filter(filter_: ConversationFilter, participant: Participant, unread: int) -> bool:
    conversation = participant.conversation
    if filter_ == ConversationFilter.GROUPS:
        return bool(conversation.is_group)
    if filter_ == ConversationFilter.INDIVIDUAL:
        return not conversation.is_group
    if filter_ == ConversationFilter.UNREAD:
        return unread > 0
    # "all" keeps hidden conversations only while they have something unread.
    return not participant.hidden_from_all_chats or unread > 0


def list_user_conversations(
    db: Session,
    *,
    requester: User,
    filter_: ConversationFilter = ConversationFilter.ALL,
) -> list[ConversationResponse]:
    """Return the denormalised conversation list for ``requester``, newest activity first."""

    stmt = (
        select(Participant)
        .where(Participant.user_id == requester.id)
        .options(
            selectinload(Participant.conversation)
            .selectinload(Conversation.participants)
            .selectinload(Participant.user)
        )
    )
    participations = [
        participation
        for participation in db.scalars(stmt)
        # Groups the requester left drop out of every list.
        if not (participation.conversation.is_group and participation.hidden_at is not None)
    ]
    unread = unread_counts_by_conversation(db, requester.id, [p.conversation_id for p in participations])

    visible = [
        participation
        for participation in participations
        if _matches_filter(filter_, participation, unread.get(participation.conversation_id, 0))
    ]
    previews = last_visible_messages(db, [p.conversation_id for p in visible], requester.id)

    rows: list[ConversationResponse] = []
    for participation in visible:
        count = unread.get(participation.conversation_id, 0)
        conversation = participation.conversation
        active = conversation.active_participants()
        other = None
        if not conversation.is_group:
            other = next((p.user for p in active if p.user_id != requester.id), None)
        rows.append(
            ConversationResponse(
                id=conversation.id,
                name=conversation.name,
                image_url=conversation.image_url,
                is_group=bool(conversation.is_group),
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                created_by=conversation.created_by,
                participants=[to_participant_response(p) for p in active],
                last_message=_to_preview(previews.get(conversation.id)),
                unread_count=count,
                is_muted=bool(participation.muted),
                other_participant=to_profile(other),
            )
        )
    rows.sort(key=lambda row: row.updated_at, reverse=True)
    return rows


def create_direct_conversation(db: Session, *, requester: User, other_user_id: UUID) -> Conversation:
    """Return the direct conversation with ``other_user_id``, creating it when missing."""

    if other_user_id == requester.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot start a conversation with yourself")
    load_users(db, [other_user_id])

    stmt = (
        select(Conversation)
        .where(
            Conversation.is_group.is_(False),
            Conversation.participants.any(Participant.user_id == requester.id),
            Conversation.participants.any(Participant.user_id == other_user_id),
        )
        .options(selectinload(Conversation.participants))
    )
    existing = db.scalar(stmt)
    if existing is not None:
        mine = require_participant(existing, requester.id, active=False)
        if mine.hidden_from_all_chats or mine.hidden_at is not None:
            mine.hidden_from_all_chats = False
            mine.hidden_at = None
            commit_or_500(db, "Failed to reopen conversation")
            schedule_change(
                "participants",
                ChangeType.UPDATE,
                mine,
                audience={requester.id},
                conversation_id=existing.id,
            )
        return existing

    conversation = Conversation(is_group=False, created_by=requester.id)
    conversation.participants = [
        Participant(user_id=requester.id, role=ParticipantRole.MEMBER.value),
        Participant(user_id=other_user_id, role=ParticipantRole.MEMBER.value),
    ]
    db.add(conversation)
    commit_or_500(db, "Failed to create conversation")

    audience = {requester.id, other_user_id}
    schedule_change("conversations", ChangeType.INSERT, conversation, audience=audience, conversation_id=conversation.id)
    for participant in conversation.participants:
        schedule_change("participants", ChangeType.INSERT, participant, audience=audience, conversation_id=conversation.id)
    return conversation


def create_group(
    db: Session,
    *,
    requester: User,
    name: str,
    participant_ids: Sequence[UUID],
    image_url: str | None = None,
) -> Conversation:
    """Create a group chat with the requester as its first administrator."""

    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group name is required")

    member_ids = [user_id for user_id in dict.fromkeys(participant_ids) if user_id != requester.id]
    load_users(db, member_ids)

    conversation = Conversation(
        name=cleaned_name,
        image_url=(image_url or None),
        is_group=True,
        created_by=requester.id,
    )
    now = utcnow()
    participants = [Participant(user_id=requester.id, role=ParticipantRole.ADMIN.value, created_at=now)]
    participants.extend(
        Participant(user_id=user_id, role=ParticipantRole.MEMBER.value) for user_id in member_ids
    )
    conversation.participants = participants
    db.add(conversation)
    db.flush()
    history = record_history(db, conversation, GroupAction.GROUP_CREATED, performed_by=requester.id, new_value=cleaned_name)
    commit_or_500(db, "Failed to create group")

    audience = conversation_audience(conversation)
    schedule_change("conversations", ChangeType.INSERT, conversation, audience=audience, conversation_id=conversation.id)
    for participant in conversation.participants:
        schedule_change("participants", ChangeType.INSERT, participant, audience=audience, conversation_id=conversation.id)
    schedule_change("group_history", ChangeType.INSERT, history, audience=audience, conversation_id=conversation.id)
    return conversation


def hide_conversation_for_user(db: Session, *, requester: User, conversation_id: UUID) -> bool:
    """Hide a conversation from the requester's "all" list until new activity arrives."""

    participant = db.scalar(
        select(Participant).where(
            Participant.conversation_id == conversation_id,
            Participant.user_id == requester.id,
        )
    )
    if participant is None:
        return False
    old_record = row_to_record(participant)
    participant.hidden_from_all_chats = True
    commit_or_500(db, "Failed to hide conversation")
    schedule_change(
        "participants",
        ChangeType.UPDATE,
        participant,
        audience={requester.id},
        conversation_id=conversation_id,
        old_record=old_record,
    )
    return True


def leave_group_for_user(db: Session, *, requester: User, conversation_id: UUID) -> bool:
    """Leave a group, handing administration to the longest-standing member when needed."""

    conversation = get_conversation_or_404(db, conversation_id)
    if not conversation.is_group:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only group conversations can be left")
    leaver = conversation.participant_for(requester.id)
    if leaver is None or not leaver.is_active:
        return False

    audience = conversation_audience(conversation, requester.id)
    promoted: Participant | None = None
    entries: list[GroupHistory] = []
    if leaver.is_admin:
        admins = [p for p in conversation.active_participants() if p.is_admin]
        if len(admins) == 1:
            promoted = next((p for p in conversation.active_participants() if p.user_id != requester.id), None)
            if promoted is not None:
                promoted.role = ParticipantRole.ADMIN.value
                entries.append(
                    record_history(
                        db,
                        conversation,
                        GroupAction.ADMIN_TRANSFERRED,
                        performed_by=requester.id,
                        affected_user_id=promoted.user_id,
                    )
                )

    leaver.hidden_at = utcnow()
    entries.append(
        record_history(
            db,
            conversation,
            GroupAction.MEMBER_LEFT,
            performed_by=requester.id,
            affected_user_id=requester.id,
        )
    )
    commit_or_500(db, "Failed to leave group")

    if promoted is not None:
        schedule_change("participants", ChangeType.UPDATE, promoted, audience=audience, conversation_id=conversation.id)
    schedule_change("participants", ChangeType.UPDATE, leaver, audience=audience, conversation_id=conversation.id)
    for entry in entries:
        schedule_change("group_history", ChangeType.INSERT, entry, audience=audience, conversation_id=conversation.id)
    return True


def set_conversation_muted(db: Session, *, requester: User, conversation_id: UUID, muted: bool) -> bool:
    participant = db.scalar(
        select(Participant).where(
            Participant.conversation_id == conversation_id,
            Participant.user_id == requester.id,
        )
    )
    if participant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    participant.muted = muted
    commit_or_500(db, "Failed to update notification settings")
    schedule_change(
        "participants",
        ChangeType.UPDATE,
        participant,
        audience={requester.id},
        conversation_id=conversation_id,
    )
    return True


__all__ = [
    "commit_or_500",
    "conversation_audience",
    "create_direct_conversation",
    "create_group",
    "get_conversation_or_404",
    "hide_conversation_for_user",
    "last_visible_messages",
    "leave_group_for_user",
    "list_user_conversations",
    "load_users",
    "record_history",
    "require_participant",
    "set_conversation_muted",
    "to_participant_response",
    "to_profile",
    "unread_counts_by_conversation",
]

"""Service layer for conversation messages, reactions and receipts."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from ..models import Conversation, Message, MessageReaction, MessageReceipt, Participant, User
from ..models.base import utcnow
from ..schemas import (
    ChangeType,
    MessageResponse,
    MessageStatus,
    ReactionResponse,
)
from .change_feed import row_to_record, schedule_change
from .conversation_service import (
    commit_or_500,
    conversation_audience,
    get_conversation_or_404,
    require_participant,
    to_profile,
)

logger = logging.getLogger(__name__)


def _get_message_or_404(db: Session, message_id: UUID) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


def _message_context(db: Session, requester: User, message_id: UUID) -> tuple[Message, Conversation]:
    message = _get_message_or_404(db, message_id)
    conversation = get_conversation_or_404(db, message.conversation_id)
    require_participant(conversation, requester.id, active=False)
    return message, conversation


def _recipients(participants: Sequence[Participant], message: Message) -> list[UUID]:
    """Participants other than the sender who were present when ``message`` was sent."""

    recipients = []
    for participant in participants:
        if participant.user_id == message.sender_id:
            continue
        if participant.created_at > message.created_at:
            continue
        if participant.hidden_at is not None and participant.hidden_at < message.created_at:
            continue
        recipients.append(participant.user_id)
    return recipients


def _status_from_receipts(recipients: Iterable[UUID], receipts: Dict[UUID, MessageReceipt]) -> MessageStatus:
    recipients = list(recipients)
    if not recipients:
        return MessageStatus.SENT
    found = [receipts.get(user_id) for user_id in recipients]
    if all(receipt is not None and receipt.read_at is not None for receipt in found):
        return MessageStatus.READ
    if all(
        receipt is not None and (receipt.delivered_at is not None or receipt.read_at is not None)
        for receipt in found
    ):
        return MessageStatus.DELIVERED
    return MessageStatus.SENT


def get_message_statuses(db: Session, messages: Sequence[Message]) -> Dict[UUID, MessageStatus]:
    """Compute delivery status for many messages with two queries."""

    if not messages:
        return {}
    conversation_ids = {message.conversation_id for message in messages}
    participants: Dict[UUID, List[Participant]] = {}
    for participant in db.scalars(select(Participant).where(Participant.conversation_id.in_(conversation_ids))):
        participants.setdefault(participant.conversation_id, []).append(participant)

    receipts: Dict[UUID, Dict[UUID, MessageReceipt]] = {}
    stmt = select(MessageReceipt).where(MessageReceipt.message_id.in_([message.id for message in messages]))
    for receipt in db.scalars(stmt):
        receipts.setdefault(receipt.message_id, {})[receipt.user_id] = receipt

    return {
        message.id: _status_from_receipts(
            _recipients(participants.get(message.conversation_id, []), message),
            receipts.get(message.id, {}),
        )
        for message in messages
    }


def get_message_status(db: Session, message_id: UUID) -> MessageStatus:
    message = _get_message_or_404(db, message_id)
    return get_message_statuses(db, [message])[message.id]


def _to_message_response(message: Message, message_status: MessageStatus = MessageStatus.SENT) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        content=message.content or "",
        images=list(message.images or []),
        shared_post=message.shared_post,
        created_at=message.created_at,
        edited_at=message.edited_at,
        deleted_at=message.deleted_at,
        sender=to_profile(message.sender),
        reactions=[ReactionResponse.model_validate(reaction) for reaction in message.reactions],
        status=message_status,
        is_edited=message.is_edited,
        is_deleted=message.is_deleted,
    )


def list_messages(db: Session, *, requester: User, conversation_id: UUID) -> List[MessageResponse]:
    """Return the thread visible to ``requester`` in creation order."""

    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, requester.id, active=False)

    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .options(selectinload(Message.sender), selectinload(Message.reactions))
        .order_by(Message.created_at.asc())
    )
    messages = [message for message in db.scalars(stmt) if not message.is_hidden_for(requester.id)]
    own = [message for message in messages if message.sender_id == requester.id]
    statuses = get_message_statuses(db, own)
    return [_to_message_response(message, statuses.get(message.id, MessageStatus.SENT)) for message in messages]


def send_message(
    db: Session,
    *,
    requester: User,
    conversation_id: UUID,
    content: str,
    images: Optional[Sequence[str]] = None,
    shared_post: Optional[dict[str, Any]] = None,
) -> MessageResponse:
    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, requester.id)

    text = (content or "").strip()
    attachments = [image for image in (images or []) if image]
    if not text and not attachments and not shared_post:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message must contain text, images or a shared post")

    now = utcnow()
    message = Message(
        conversation_id=conversation.id,
        sender_id=requester.id,
        content=text,
        images=attachments or None,
        shared_post=shared_post,
        created_at=now,
        updated_at=now,
    )
    db.add(message)
    conversation.updated_at = now
    reshown: list[Participant] = []
    for participant in conversation.active_participants():
        if participant.user_id != requester.id and participant.hidden_from_all_chats:
            participant.hidden_from_all_chats = False
            reshown.append(participant)
    commit_or_500(db, "Failed to send message")

    audience = conversation_audience(conversation)
    schedule_change("messages", ChangeType.INSERT, message, audience=audience, conversation_id=conversation.id)
    schedule_change("conversations", ChangeType.UPDATE, conversation, audience=audience, conversation_id=conversation.id)
    for participant in reshown:
        schedule_change(
            "participants",
            ChangeType.UPDATE,
            participant,
            audience={participant.user_id},
            conversation_id=conversation.id,
        )
    return _to_message_response(message, MessageStatus.SENT)


def edit_message(db: Session, *, requester: User, message_id: UUID, content: str) -> MessageResponse:
    message, conversation = _message_context(db, requester, message_id)
    if message.sender_id != requester.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can edit this message")
    if message.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Deleted messages cannot be edited")
    text = (content or "").strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content cannot be empty")

    old_record = row_to_record(message)
    message.content = text
    message.edited_at = utcnow()
    commit_or_500(db, "Failed to edit message")

    schedule_change(
        "messages",
        ChangeType.UPDATE,
        message,
        audience=conversation_audience(conversation),
        conversation_id=conversation.id,
        old_record=old_record,
    )
    return _to_message_response(message, get_message_statuses(db, [message])[message.id])


def hide_message_for_user(db: Session, *, requester: User, message_id: UUID) -> bool:
    """Delete ``message_id`` for the requester only."""

    message, conversation = _message_context(db, requester, message_id)
    if message.is_hidden_for(requester.id):
        return True
    # Reassign so the JSON column is flagged dirty.
    message.hidden_by = [*(message.hidden_by or []), str(requester.id)]
    commit_or_500(db, "Failed to delete message")
    schedule_change(
        "messages",
        ChangeType.UPDATE,
        message,
        audience={requester.id},
        conversation_id=conversation.id,
    )
    return True


def delete_message_for_everyone(db: Session, *, requester: User, message_id: UUID) -> MessageResponse:
    message, conversation = _message_context(db, requester, message_id)
    if message.sender_id != requester.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can delete this message")
    if not message.is_deleted:
        message.deleted_at = utcnow()
        message.content = ""
        message.images = None
        message.shared_post = None
        message.reactions = []
        commit_or_500(db, "Failed to delete message")
        schedule_change(
            "messages",
            ChangeType.UPDATE,
            message,
            audience=conversation_audience(conversation),
            conversation_id=conversation.id,
        )
    return _to_message_response(message, get_message_statuses(db, [message])[message.id])


def set_reaction(db: Session, *, requester: User, message_id: UUID, emoji: str) -> ReactionResponse:
    """Replace the requester's reaction on a message."""

    message, conversation = _message_context(db, requester, message_id)
    if message.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot react to a deleted message")
    cleaned = (emoji or "").strip()
    if not cleaned:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Emoji is required")

    db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message.id,
            MessageReaction.user_id == requester.id,
        )
    )
    reaction = MessageReaction(message_id=message.id, user_id=requester.id, emoji=cleaned, created_at=utcnow())
    db.add(reaction)
    commit_or_500(db, "Failed to save reaction")
    db.expire(message, ["reactions"])

    schedule_change(
        "message_reactions",
        ChangeType.INSERT,
        reaction,
        audience=conversation_audience(conversation),
        conversation_id=conversation.id,
    )
    return ReactionResponse.model_validate(reaction)


def remove_reaction(db: Session, *, requester: User, message_id: UUID) -> bool:
    message, conversation = _message_context(db, requester, message_id)
    reaction = db.scalar(
        select(MessageReaction).where(
            MessageReaction.message_id == message.id,
            MessageReaction.user_id == requester.id,
        )
    )
    if reaction is None:
        return False
    old_record = row_to_record(reaction)
    db.delete(reaction)
    commit_or_500(db, "Failed to remove reaction")
    db.expire(message, ["reactions"])
    schedule_change(
        "message_reactions",
        ChangeType.DELETE,
        None,
        audience=conversation_audience(conversation),
        conversation_id=conversation.id,
        old_record=old_record,
    )
    return True


def _incoming_messages(db: Session, requester: User, conversation_id: UUID) -> list[Message]:
    stmt = select(Message).where(
        Message.conversation_id == conversation_id,
        Message.sender_id.is_not(None),
        Message.sender_id != requester.id,
        Message.deleted_at.is_(None),
    )
    return list(db.scalars(stmt))


def _upsert_receipts(
    db: Session,
    requester: User,
    messages: Sequence[Message],
    *,
    read: bool,
) -> list[tuple[MessageReceipt, ChangeType]]:
    if not messages:
        return []
    existing = {
        receipt.message_id: receipt
        for receipt in db.scalars(
            select(MessageReceipt).where(
                MessageReceipt.user_id == requester.id,
                MessageReceipt.message_id.in_([message.id for message in messages]),
            )
        )
    }
    now = utcnow()
    changed: list[tuple[MessageReceipt, ChangeType]] = []
    for message in messages:
        receipt = existing.get(message.id)
        if receipt is None:
            receipt = MessageReceipt(
                message_id=message.id,
                user_id=requester.id,
                delivered_at=now,
                read_at=now if read else None,
                created_at=now,
            )
            db.add(receipt)
            changed.append((receipt, ChangeType.INSERT))
            continue
        dirty = False
        if receipt.delivered_at is None:
            receipt.delivered_at = now
            dirty = True
        if read and receipt.read_at is None:
            receipt.read_at = now
            dirty = True
        if dirty:
            changed.append((receipt, ChangeType.UPDATE))
    return changed


def _publish_receipts(conversation: Conversation, changed: Sequence[tuple[MessageReceipt, ChangeType]]) -> None:
    audience = conversation_audience(conversation)
    for receipt, event in changed:
        schedule_change("message_receipts", event, receipt, audience=audience, conversation_id=conversation.id)


def mark_messages_delivered(db: Session, *, requester: User, conversation_id: UUID) -> int:
    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, requester.id, active=False)
    changed = _upsert_receipts(db, requester, _incoming_messages(db, requester, conversation_id), read=False)
    if not changed:
        return 0
    commit_or_500(db, "Failed to mark messages as delivered")
    _publish_receipts(conversation, changed)
    return len(changed)


def mark_messages_read(db: Session, *, requester: User, conversation_id: UUID) -> int:
    """Record read receipts for every incoming message and re-show the conversation."""

    conversation = get_conversation_or_404(db, conversation_id)
    participant = require_participant(conversation, requester.id, active=False)
    changed = _upsert_receipts(db, requester, _incoming_messages(db, requester, conversation_id), read=True)
    participant.last_read_at = utcnow()
    participant.hidden_from_all_chats = False
    commit_or_500(db, "Failed to mark messages as read")

    _publish_receipts(conversation, changed)
    schedule_change(
        "participants",
        ChangeType.UPDATE,
        participant,
        audience={requester.id},
        conversation_id=conversation.id,
    )
    return len(changed)


def clear_messages_for_user(db: Session, *, requester: User, conversation_id: UUID) -> int:
    """Hide every current message of the conversation for the requester."""

    conversation = get_conversation_or_404(db, conversation_id)
    require_participant(conversation, requester.id, active=False)
    key = str(requester.id)
    cleared = 0
    for message in db.scalars(select(Message).where(Message.conversation_id == conversation_id)):
        if message.is_hidden_for(requester.id):
            continue
        message.hidden_by = [*(message.hidden_by or []), key]
        cleared += 1
    if cleared:
        commit_or_500(db, "Failed to clear messages")
        logger.info("Cleared %s messages in %s for %s", cleared, conversation_id, requester.id)
        schedule_change(
            "messages",
            ChangeType.UPDATE,
            None,
            audience={requester.id},
            conversation_id=conversation.id,
        )
    return cleared


__all__ = [
    "list_messages",
    "get_message_status",
    "get_message_statuses",
    "send_message",
    "edit_message",
    "hide_message_for_user",
    "delete_message_for_everyone",
    "set_reaction",
    "remove_reaction",
    "mark_messages_delivered",
    "mark_messages_read",
    "clear_messages_for_user",
]

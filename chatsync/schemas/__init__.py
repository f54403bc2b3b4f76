"""Convenience exports for schema layer."""
from .auth import AuthResponse, LoginRequest, ProfileResponse, ProfileSummary, RegisterRequest
from .conversations import (
    ConversationActionResponse,
    ConversationCreatedResponse,
    ConversationFilter,
    ConversationResponse,
    DirectConversationCreate,
    GroupCreate,
    MuteConversationRequest,
    ParticipantResponse,
)
from .groups import (
    GroupDetailResponse,
    GroupHistoryEntry,
    GroupInfo,
    GroupMembershipResponse,
    GroupParticipantsRequest,
    GroupRenameRequest,
)
from .messages import (
    LastMessagePreview,
    MessageActionResponse,
    MessageEditRequest,
    MessageResponse,
    MessageSendRequest,
    MessageStatus,
    MessageStatusResponse,
    MessageThreadResponse,
    ReactionRequest,
    ReactionResponse,
)
from .mutes import MuteActionResponse, MutedUserListResponse, MutedUserResponse, UnreadCountResponse
from .realtime import ChangeEvent, ChangeType, PresenceState

__all__ = [
    "AuthResponse",
    "LoginRequest",
    "ProfileResponse",
    "ProfileSummary",
    "RegisterRequest",
    "ConversationActionResponse",
    "ConversationCreatedResponse",
    "ConversationFilter",
    "ConversationResponse",
    "DirectConversationCreate",
    "GroupCreate",
    "MuteConversationRequest",
    "ParticipantResponse",
    "GroupDetailResponse",
    "GroupHistoryEntry",
    "GroupInfo",
    "GroupMembershipResponse",
    "GroupParticipantsRequest",
    "GroupRenameRequest",
    "LastMessagePreview",
    "MessageActionResponse",
    "MessageEditRequest",
    "MessageResponse",
    "MessageSendRequest",
    "MessageStatus",
    "MessageStatusResponse",
    "MessageThreadResponse",
    "ReactionRequest",
    "ReactionResponse",
    "MuteActionResponse",
    "MutedUserListResponse",
    "MutedUserResponse",
    "UnreadCountResponse",
    "ChangeEvent",
    "ChangeType",
    "PresenceState",
]

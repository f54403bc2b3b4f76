"""Service layer exports."""
from .auth_service import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    get_current_user,
    register_user,
    resolve_token_user,
)
from .change_feed import change_feed, schedule_change
from .conversation_service import (
    create_direct_conversation,
    create_group,
    hide_conversation_for_user,
    leave_group_for_user,
    list_user_conversations,
    set_conversation_muted,
)
from .group_service import (
    add_participants,
    get_group_details,
    make_admin,
    remove_admin,
    remove_participant,
    update_group_name,
)
from .message_service import (
    clear_messages_for_user,
    delete_message_for_everyone,
    edit_message,
    get_message_status,
    get_message_statuses,
    hide_message_for_user,
    list_messages,
    mark_messages_delivered,
    mark_messages_read,
    remove_reaction,
    send_message,
    set_reaction,
)
from .mute_service import list_muted_users, mute_user, unmute_user
from .presence import presence_frame, presence_registry
from .unread_service import count_unread_messages

__all__ = [
    "authenticate_user",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "register_user",
    "resolve_token_user",
    "change_feed",
    "schedule_change",
    "create_direct_conversation",
    "create_group",
    "hide_conversation_for_user",
    "leave_group_for_user",
    "list_user_conversations",
    "set_conversation_muted",
    "add_participants",
    "get_group_details",
    "make_admin",
    "remove_admin",
    "remove_participant",
    "update_group_name",
    "clear_messages_for_user",
    "delete_message_for_everyone",
    "edit_message",
    "get_message_status",
    "get_message_statuses",
    "hide_message_for_user",
    "list_messages",
    "mark_messages_delivered",
    "mark_messages_read",
    "remove_reaction",
    "send_message",
    "set_reaction",
    "list_muted_users",
    "mute_user",
    "unmute_user",
    "presence_frame",
    "presence_registry",
    "count_unread_messages",
]

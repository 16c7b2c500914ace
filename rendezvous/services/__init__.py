"""Services package for the Rendezvous engine."""

from rendezvous.services.like_service import (
    check_like_status,
    get_received_likes,
    get_sent_likes,
    remove_like,
    send_like,
)
from rendezvous.services.match_service import (
    create_match,
    ensure_match,
    find_match,
    get_match,
    list_matches,
    reconcile_mutual_likes,
)
from rendezvous.services.message_service import (
    delete_message,
    get_messages,
    get_unread_count,
    get_unread_per_match,
    mark_messages_as_read,
    purge_all_expired,
    purge_expired,
    send_message,
)
from rendezvous.services.moderation_service import (
    block_user,
    get_block_status,
    report_user,
    unblock_user,
)
from rendezvous.services.profile_service import create_profile, get_profile

__all__ = [
    "block_user",
    "check_like_status",
    "create_match",
    "create_profile",
    "delete_message",
    "ensure_match",
    "find_match",
    "get_block_status",
    "get_match",
    "get_messages",
    "get_profile",
    "get_received_likes",
    "get_sent_likes",
    "get_unread_count",
    "get_unread_per_match",
    "list_matches",
    "mark_messages_as_read",
    "purge_all_expired",
    "purge_expired",
    "reconcile_mutual_likes",
    "remove_like",
    "report_user",
    "send_like",
    "send_message",
    "unblock_user",
]

"""Client-side state: viewer sessions, open conversations and unread counts."""

from rendezvous.client.conversation import ConversationView
from rendezvous.client.session import ViewerSession
from rendezvous.client.unread import UnreadTracker

__all__ = ["ConversationView", "UnreadTracker", "ViewerSession"]

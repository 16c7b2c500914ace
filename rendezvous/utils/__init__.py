"""Utils package for the Rendezvous engine."""

from rendezvous.utils.cache import delete_cache, get_cache, get_cache_model, set_cache
from rendezvous.utils.database import execute_query, run_query, utcnow
from rendezvous.utils.errors import (
    AlreadyLikedError,
    BlockedError,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    DuplicateMatchError,
    EmptyContentError,
    InvalidParticipantError,
    NotFoundError,
    RendezvousError,
    SubscriptionError,
    TransportError,
    ValidationError,
)
from rendezvous.utils.logging import configure_logging, get_logger, log_error, viewer_context

__all__ = [
    "AlreadyLikedError",
    "BlockedError",
    "ConfigurationError",
    "ConflictError",
    "DatabaseError",
    "DuplicateMatchError",
    "EmptyContentError",
    "InvalidParticipantError",
    "NotFoundError",
    "RendezvousError",
    "SubscriptionError",
    "TransportError",
    "ValidationError",
    "configure_logging",
    "delete_cache",
    "execute_query",
    "get_cache",
    "get_cache_model",
    "get_logger",
    "log_error",
    "run_query",
    "set_cache",
    "utcnow",
    "viewer_context",
]

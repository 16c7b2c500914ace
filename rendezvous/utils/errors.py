"""Custom exceptions for the Rendezvous engine."""

from typing import Any, Dict, Optional


class RendezvousError(Exception):
    """Base exception for all Rendezvous errors."""

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the error with a message and optional details.

        Args:
            message (str): Error message describing what went wrong.
            status_code (int): HTTP status code associated with the error (default 500).
            details (Optional[Dict[str, Any]]): Additional context or debug information.
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(RendezvousError):
    """Raised when there's an issue with the application configuration."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 500, details)


class DatabaseError(RendezvousError):
    """Raised when there's an issue with the database operations."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 500, details)


class ConflictError(DatabaseError):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.status_code = 409


class ValidationError(RendezvousError):
    """Raised when data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the validation error.

        Args:
            message (str): Error message.
            details (Optional[Dict[str, Any]]): Additional details.
        """
        super().__init__(message, 400, details)


class EmptyContentError(ValidationError):
    """Raised when a message has no content after trimming."""


class InvalidParticipantError(RendezvousError):
    """Raised when a profile acts on a match it does not belong to."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 403, details)


class BlockedError(RendezvousError):
    """Raised when one side of a conversation has blocked the other."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 403, details)


class NotFoundError(RendezvousError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the not found error.

        Args:
            message (str): Error message.
            details (Optional[Dict[str, Any]]): Additional details.
        """
        super().__init__(message, 404, details)


class AlreadyLikedError(RendezvousError):
    """Raised when a profile likes the same profile twice."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)


class DuplicateMatchError(RendezvousError):
    """Raised when a match already exists for an unordered pair."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)


class TransportError(RendezvousError):
    """Raised when the storage or realtime backend cannot be reached.

    The failed operation may be retried.
    """

    def __init__(self, message: str, service: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the transport error.

        Args:
            message (str): Error message.
            service (str): Name of the backend that failed.
            details (Optional[Dict[str, Any]]): Additional details.
        """
        error_details = details or {}
        error_details["service"] = service
        super().__init__(message, 503, error_details)


class SubscriptionError(TransportError):
    """Raised when a change feed subscription is lost."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, "change_feed", details)

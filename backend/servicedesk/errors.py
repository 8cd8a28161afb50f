"""Typed failures shared by the HTTP and WebSocket entry points.

Every error carries the HTTP status it maps to and the message that is
safe to show to the client. Internal detail goes to the log, not here.
"""
from enum import Enum
from typing import Optional


class ForbiddenReason(str, Enum):
    """Why a policy check denied access.

    Attributes:
        NOT_ASSIGNED: The reporter is waiting for the ticket to be assigned.
        NO_RELATIONSHIP: The actor has no relationship to the ticket.
    """
    NOT_ASSIGNED = "not-assigned"
    NO_RELATIONSHIP = "no-relationship"


class ServiceDeskError(Exception):
    """Base class for failures surfaced to clients."""

    status_code: int = 500
    kind: str = "error"
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def error_code(self) -> str:
        return self.kind


class ValidationError(ServiceDeskError):
    status_code = 400
    kind = "validation"
    default_message = "Message content is required"


class AuthenticationError(ServiceDeskError):
    status_code = 401
    kind = "unauthenticated"
    default_message = "Authentication error"


class ForbiddenError(ServiceDeskError):
    status_code = 403
    kind = "forbidden"
    default_message = "You do not have permission to access this ticket"

    _messages = {
        ForbiddenReason.NOT_ASSIGNED: "Ticket must be assigned before you can send messages",
        ForbiddenReason.NO_RELATIONSHIP: "You do not have permission to access this ticket",
    }

    def __init__(
        self,
        reason: ForbiddenReason = ForbiddenReason.NO_RELATIONSHIP,
        message: Optional[str] = None,
    ) -> None:
        self.reason = reason
        super().__init__(message or self._messages[reason])

    @property
    def error_code(self) -> str:
        return f"{self.kind}:{self.reason.value}"


class NotFoundError(ServiceDeskError):
    status_code = 404
    kind = "not_found"
    default_message = "Ticket not found"


class StoreError(ServiceDeskError):
    """Persistence failure. Transient from the caller's point of view."""
    status_code = 500
    kind = "store"
    default_message = "Error accessing the message store"

"""Pydantic models for users and tickets."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from servicedesk.db import utcnow


class UserRole(str, Enum):
    """Role of a user account. Fixed for the lifetime of a session."""
    STANDARD = "standard"
    SERVICE_DESK = "service_desk"
    ADMIN = "admin"


class TicketStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Statuses that only make sense once someone owns the ticket.
STATUSES_REQUIRING_ASSIGNEE = frozenset({
    TicketStatus.ASSIGNED,
    TicketStatus.IN_PROGRESS,
    TicketStatus.CLOSED,
})


class User(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole = UserRole.STANDARD


class Ticket(BaseModel):
    """A reported issue as seen by the chat subsystem."""
    id: str
    title: str
    description: str = ""
    reporterId: str
    assignedToId: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.MEDIUM
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)
    closedAt: Optional[datetime] = None


class TicketCreate(BaseModel):
    """Request body for creating a ticket."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    priority: TicketPriority = TicketPriority.MEDIUM


class TicketAssign(BaseModel):
    """Request body for assigning a ticket. Defaults to the caller."""
    assigneeId: Optional[str] = None


class TicketStatusUpdate(BaseModel):
    status: TicketStatus

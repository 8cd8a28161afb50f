"""Pydantic schemas for ticket chat messages and protocol frames."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from servicedesk.directory.models import UserRole


class MessageSender(BaseModel):
    """Sender details joined onto each message for display."""
    id: str
    name: str = ""
    email: str = ""
    role: Optional[UserRole] = None


class Message(BaseModel):
    """A persisted chat message.

    Attributes:
        id: Unique message identifier.
        ticketId: Ticket this message belongs to.
        senderId: User who sent it.
        content: Trimmed, non-empty message text.
        read: Whether the counterpart has seen it.
        readAt: When it was marked read.
        createdAt: Server-assigned; never decreases within a ticket.
        sender: Sender display fields.
    """
    id: str
    ticketId: str
    senderId: str
    content: str
    read: bool = False
    readAt: Optional[datetime] = None
    createdAt: datetime
    sender: Optional[MessageSender] = None

    def to_wire(self) -> dict:
        """JSON-safe dict for HTTP bodies and socket frames."""
        return self.model_dump(mode="json")


class MessageCreate(BaseModel):
    """Request body for POST /tickets/{id}/messages."""
    content: str = Field(default="", description="Message text")


class ApiResponse(BaseModel):
    """Envelope shared by every one-shot endpoint."""
    success: bool
    message: Optional[str] = None
    data: Optional[dict] = None
    error: Optional[str] = None


def messages_to_wire(messages: List[Message]) -> List[dict]:
    return [m.to_wire() for m in messages]

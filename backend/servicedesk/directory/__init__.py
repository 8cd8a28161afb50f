"""User and ticket directory.

The chat subsystem only reads from the directory (role lookup, ticket
reporter/assignee/status). The write operations exist so a deployment
can create tickets and assign them to service-desk staff.
"""
from .models import Ticket, TicketPriority, TicketStatus, User, UserRole
from .service import DirectoryService

__all__ = [
    "DirectoryService",
    "Ticket",
    "TicketPriority",
    "TicketStatus",
    "User",
    "UserRole",
]

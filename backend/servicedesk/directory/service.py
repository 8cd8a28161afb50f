"""DirectoryService: DuckDB-backed users and tickets."""
import logging
import uuid
from typing import Optional

from servicedesk.db import Database, utcnow
from servicedesk.errors import NotFoundError, ValidationError

from .models import (
    STATUSES_REQUIRING_ASSIGNEE,
    Ticket,
    TicketPriority,
    TicketStatus,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = (
    "id, title, description, reporter_id, assigned_to_id, status, priority, "
    "created_at, updated_at, closed_at"
)


class DirectoryService:
    """Lookup and lifecycle operations for users and tickets.

    Ticket ownership is decided by ``assigned_to_id`` alone. A status that
    implies an owner is refused on a ticket nobody owns.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(
        self,
        name: str,
        email: str,
        role: UserRole = UserRole.STANDARD,
        user_id: Optional[str] = None,
    ) -> User:
        user = User(
            id=user_id or str(uuid.uuid4()),
            name=name.strip(),
            email=email.strip().lower(),
            role=role,
        )
        self._db.execute(
            "INSERT INTO users (id, name, email, role, created_at) VALUES (?, ?, ?, ?, ?)",
            [user.id, user.name, user.email, user.role.value, utcnow()],
        )
        logger.info("[Directory] Created user %s (%s)", user.id, user.role.value)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._db.fetchone(
            "SELECT id, name, email, role FROM users WHERE id = ?", [user_id]
        )
        if row is None:
            return None
        return User(id=row[0], name=row[1], email=row[2], role=UserRole(row[3]))

    # -----------------------------------------------------------------------
    # Tickets
    # -----------------------------------------------------------------------

    def create_ticket(
        self,
        reporter_id: str,
        title: str,
        description: str = "",
        priority: TicketPriority = TicketPriority.MEDIUM,
    ) -> Ticket:
        now = utcnow()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description,
            reporterId=reporter_id,
            priority=priority,
            createdAt=now,
            updatedAt=now,
        )
        self._db.execute(
            f"""
            INSERT INTO tickets ({_TICKET_COLUMNS})
            VALUES (?, ?, ?, ?, NULL, ?, ?, ?, ?, NULL)
            """,
            [
                ticket.id, ticket.title, ticket.description, reporter_id,
                ticket.status.value, ticket.priority.value, now, now,
            ],
        )
        logger.info("[Directory] Ticket %s reported by %s", ticket.id, reporter_id)
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        row = self._db.fetchone(
            f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE id = ?", [ticket_id]
        )
        return self._row_to_ticket(row) if row else None

    def assign_ticket(self, ticket_id: str, assignee_id: str) -> Ticket:
        """Hand the ticket to a service-desk user and mark it assigned.

        Raises:
            NotFoundError: If the ticket does not exist.
            ValidationError: If the assignee is unknown or not service desk.
        """
        ticket = self._require_ticket(ticket_id)
        assignee = self.get_user(assignee_id)
        if assignee is None or assignee.role != UserRole.SERVICE_DESK:
            raise ValidationError("Tickets can only be assigned to service desk users")

        now = utcnow()
        self._db.execute(
            "UPDATE tickets SET assigned_to_id = ?, status = ?, updated_at = ? WHERE id = ?",
            [assignee_id, TicketStatus.ASSIGNED.value, now, ticket.id],
        )
        logger.info("[Directory] Ticket %s assigned to %s", ticket_id, assignee_id)
        return self._require_ticket(ticket_id)

    def update_status(self, ticket_id: str, status: TicketStatus) -> Ticket:
        ticket = self._require_ticket(ticket_id)
        if status in STATUSES_REQUIRING_ASSIGNEE and ticket.assignedToId is None:
            raise ValidationError(
                f"Ticket must be assigned before it can be marked {status.value}"
            )

        now = utcnow()
        closed_at = now if status == TicketStatus.CLOSED else None
        self._db.execute(
            "UPDATE tickets SET status = ?, updated_at = ?, closed_at = ? WHERE id = ?",
            [status.value, now, closed_at, ticket_id],
        )
        logger.info("[Directory] Ticket %s status -> %s", ticket_id, status.value)
        return self._require_ticket(ticket_id)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError()
        return ticket

    @staticmethod
    def _row_to_ticket(row: tuple) -> Ticket:
        return Ticket(
            id=row[0],
            title=row[1],
            description=row[2],
            reporterId=row[3],
            assignedToId=row[4],
            status=TicketStatus(row[5]),
            priority=TicketPriority(row[6]),
            createdAt=row[7],
            updatedAt=row[8],
            closedAt=row[9],
        )

"""MessageStore: DuckDB-backed ticket message log.

Database Schema:
    messages table:
        - id: UUID primary key
        - seq: Insertion sequence, tie-breaker for equal timestamps
        - ticket_id: Ticket the message belongs to
        - sender_id: User who sent the message
        - content: Trimmed message text
        - is_read / read_at: Read state, only ever flips false -> true
        - created_at: Assigned here, never by the caller

Ordering:
    The store is the single point of ordering truth. ``created_at`` is
    clamped so it never goes backwards within a ticket, and ``seq`` breaks
    ties, so ``list_by_ticket`` always returns messages in append order.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from servicedesk.db import Database, utcnow
from servicedesk.directory.models import UserRole
from servicedesk.errors import ValidationError

from .schemas import Message, MessageSender

logger = logging.getLogger(__name__)

_SELECT_WITH_SENDER = """
    SELECT m.id, m.ticket_id, m.sender_id, m.content, m.is_read, m.read_at,
           m.created_at, u.name, u.email, u.role
    FROM messages m
    LEFT JOIN users u ON u.id = m.sender_id
"""


class MessageStore:
    """Append, query and mark-read operations over the message log."""

    def __init__(self, db: Database, max_length: int = 5000) -> None:
        self._db = db
        self.max_length = max_length

    def append(self, ticket_id: str, sender_id: str, content: str) -> Message:
        """Persist a message and return it with sender fields populated.

        Raises:
            ValidationError: If content is empty after trimming or too long.
            StoreError: If the database write fails.
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError()
        if len(text) > self.max_length:
            raise ValidationError(
                f"Message is too long (max {self.max_length} characters)"
            )

        message_id = str(uuid.uuid4())
        created_at = self._next_timestamp(ticket_id)
        self._db.execute(
            """
            INSERT INTO messages (id, ticket_id, sender_id, content, is_read, read_at, created_at)
            VALUES (?, ?, ?, ?, FALSE, NULL, ?)
            """,
            [message_id, ticket_id, sender_id, text, created_at],
        )
        logger.debug("[Store] Appended %s to ticket %s", message_id, ticket_id)
        return self.get(message_id)

    def get(self, message_id: str) -> Optional[Message]:
        row = self._db.fetchone(f"{_SELECT_WITH_SENDER} WHERE m.id = ?", [message_id])
        return self._row_to_message(row) if row else None

    def list_by_ticket(self, ticket_id: str) -> List[Message]:
        """All messages for a ticket, oldest first."""
        rows = self._db.fetchall(
            f"{_SELECT_WITH_SENDER} WHERE m.ticket_id = ? ORDER BY m.created_at ASC, m.seq ASC",
            [ticket_id],
        )
        return [self._row_to_message(r) for r in rows]

    def mark_read_except(self, ticket_id: str, exclude_sender_id: str) -> int:
        """Mark every unread message not sent by *exclude_sender_id* as read.

        Already-read messages keep their original ``read_at``, so calling
        this again is a no-op.

        Returns:
            Number of messages that changed state.
        """
        rows = self._db.fetchall(
            """
            UPDATE messages
            SET is_read = TRUE, read_at = ?
            WHERE ticket_id = ? AND sender_id <> ? AND is_read = FALSE
            RETURNING id
            """,
            [utcnow(), ticket_id, exclude_sender_id],
        )
        if rows:
            logger.debug(
                "[Store] Marked %d message(s) read in ticket %s for %s",
                len(rows), ticket_id, exclude_sender_id,
            )
        return len(rows)

    def count_unread_except(self, ticket_id: str, user_id: str) -> int:
        row = self._db.fetchone(
            """
            SELECT count(*) FROM messages
            WHERE ticket_id = ? AND sender_id <> ? AND is_read = FALSE
            """,
            [ticket_id, user_id],
        )
        return int(row[0]) if row else 0

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _next_timestamp(self, ticket_id: str) -> datetime:
        now = utcnow()
        row = self._db.fetchone(
            "SELECT max(created_at) FROM messages WHERE ticket_id = ?", [ticket_id]
        )
        latest = row[0] if row else None
        if latest is not None and latest > now:
            return latest
        return now

    @staticmethod
    def _row_to_message(row: tuple) -> Message:
        sender = MessageSender(
            id=row[2],
            name=row[7] or "",
            email=row[8] or "",
            role=UserRole(row[9]) if row[9] else None,
        )
        return Message(
            id=row[0],
            ticketId=row[1],
            senderId=row[2],
            content=row[3],
            read=bool(row[4]),
            readAt=row[5],
            createdAt=row[6],
            sender=sender,
        )

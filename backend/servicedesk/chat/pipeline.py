"""Message delivery pipeline.

Single path for every chat operation, whichever transport it came in on:

    validate -> authorize -> persist -> broadcast -> mark read

The HTTP endpoints and the WebSocket handlers both call into this module,
so the authorization and persistence outcome of a send is the same on
both. Only the way the sender gets the message back differs: HTTP callers
get it as the return value, socket callers get the ``new-message`` frame.
"""
import logging
from typing import List, Optional

from servicedesk.directory.models import Ticket
from servicedesk.directory.service import DirectoryService
from servicedesk.errors import StoreError, ValidationError

from .policy import AccessPolicy, Actor
from .rooms import RoomManager
from .schemas import Message
from .sessions import Session
from .store import MessageStore

logger = logging.getLogger(__name__)


class DeliveryPipeline:
    """Orchestrates chat reads and writes for one process."""

    def __init__(
        self,
        directory: DirectoryService,
        store: MessageStore,
        policy: AccessPolicy,
        rooms: RoomManager,
    ) -> None:
        self._directory = directory
        self._store = store
        self._policy = policy
        self._rooms = rooms

    def load_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self._directory.get_ticket(ticket_id)

    # =========================================================================
    # Send
    # =========================================================================

    async def send(
        self,
        actor: Actor,
        ticket_id: str,
        content: Optional[str],
        origin: Optional[Session] = None,
    ) -> Message:
        """Validate, authorize, persist and fan out a new message.

        Args:
            actor: Verified sender.
            ticket_id: Target ticket.
            content: Raw message text.
            origin: The sender's socket session when the send arrived over
                a WebSocket. It gets the ``new-message`` frame exactly once,
                whether or not it is bound to the room.

        Returns:
            The stored message, with sender fields.

        Raises:
            ValidationError: Empty or whitespace-only content.
            NotFoundError: Unknown ticket.
            ForbiddenError: Policy denial (not-assigned / no-relationship).
            StoreError: Persistence failure.
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError()

        ticket = self.load_ticket(ticket_id)
        self._policy.require_send(actor, ticket)

        try:
            message = self._store.append(ticket_id, actor.id, content)
        except StoreError as exc:
            logger.error(f"[Pipeline] Append failed for ticket {ticket_id} from {actor.id}: {exc}")
            raise StoreError("Error sending message") from exc

        logger.info(f"[Pipeline] Message {message.id} from {actor.id} in ticket {ticket_id}")

        payload = {"type": "new-message", "message": message.to_wire()}
        delivered = await self._rooms.broadcast(ticket_id, payload)
        if origin is not None and origin not in delivered:
            await origin.send(payload)

        # A sent message is never unread for its sender, and replying means
        # the counterpart's earlier messages have been seen.
        self._mark_read_quietly(ticket_id, actor.id)
        return message

    # =========================================================================
    # Read side
    # =========================================================================

    def open_thread(self, actor: Actor, ticket_id: str) -> List[Message]:
        """Return the ordered thread and mark the counterpart's messages read."""
        ticket = self.load_ticket(ticket_id)
        self._policy.require_view(actor, ticket)

        try:
            messages = self._store.list_by_ticket(ticket_id)
        except StoreError as exc:
            logger.error(f"[Pipeline] Listing ticket {ticket_id} failed: {exc}")
            raise StoreError("Error fetching messages") from exc

        self._mark_read_quietly(ticket_id, actor.id)
        return messages

    def mark_read(self, actor: Actor, ticket_id: str) -> int:
        """Mark every counterpart message in the ticket as read.

        Returns:
            Number of messages that flipped to read.
        """
        ticket = self.load_ticket(ticket_id)
        self._policy.require_view(actor, ticket)

        try:
            return self._store.mark_read_except(ticket_id, actor.id)
        except StoreError as exc:
            logger.error(f"[Pipeline] Mark-read failed for ticket {ticket_id}: {exc}")
            raise StoreError("Error marking messages as read") from exc

    def unread_count(self, actor: Actor, ticket_id: str) -> int:
        ticket = self.load_ticket(ticket_id)
        self._policy.require_view(actor, ticket)
        return self._store.count_unread_except(ticket_id, actor.id)

    def _mark_read_quietly(self, ticket_id: str, user_id: str) -> None:
        # The primary action already succeeded; a failed mark-read is
        # retried the next time the thread is opened.
        try:
            self._store.mark_read_except(ticket_id, user_id)
        except StoreError as exc:
            logger.warning(f"[Pipeline] Mark-read after action failed for ticket {ticket_id}: {exc}")

"""Ticket room membership and broadcasting.

A room is the set of sessions currently bound to one ticket. It is never
stored on its own: membership is read off each Session's ``rooms`` set,
so scanning the registry always reconstructs it.

Key features:
    - Policy-checked join with a private history snapshot
    - Join marks the counterpart's messages read
    - Ordered, concurrent per-room broadcast with asyncio.gather()
    - Dead sessions are dropped from the room during broadcast

Performance Notes:
    - Each room has an asyncio.Lock held for the length of one broadcast,
      so every member sees messages in the order they were appended.
    - A room's lock is dropped once its last member leaves.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from servicedesk.directory.service import DirectoryService
from servicedesk.errors import StoreError

from .policy import AccessPolicy
from .schemas import Message, messages_to_wire
from .sessions import Session, SessionRegistry
from .store import MessageStore

logger = logging.getLogger(__name__)


class RoomManager:
    """Binds sessions to ticket rooms and fans frames out to them."""

    def __init__(
        self,
        registry: SessionRegistry,
        directory: DirectoryService,
        store: MessageStore,
        policy: AccessPolicy,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._store = store
        self._policy = policy

        # ticket_id -> lock serialising broadcasts to that room
        self._room_locks: Dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Membership
    # =========================================================================

    async def join(self, session: Session, ticket_id: str) -> List[Message]:
        """Bind *session* to a ticket room and send it the thread history.

        The snapshot goes to the requester only. Once it is delivered the
        counterpart's messages are marked read.

        Raises:
            NotFoundError: If the ticket does not exist. No membership change.
            ForbiddenError: If the session may not view the ticket.
            StoreError: If the history could not be loaded.
        """
        ticket = self._directory.get_ticket(ticket_id)
        self._policy.require_view(session.actor, ticket)

        session.rooms.add(ticket_id)
        session.current_ticket_room = ticket_id
        logger.info(
            f"[Rooms] Session {session.session_id} ({session.user_id}) joined ticket {ticket_id}; "
            f"{len(self.members(ticket_id))} member(s)"
        )

        try:
            history = self._store.list_by_ticket(ticket_id)
        except StoreError as exc:
            logger.error(f"[Rooms] Could not load history for ticket {ticket_id}: {exc}")
            raise StoreError("Error joining ticket room") from exc

        await session.send({
            "type": "messages-loaded",
            "ticketId": ticket_id,
            "messages": messages_to_wire(history),
        })

        # The join already succeeded; a failed mark-read is retried on the
        # next join or thread open.
        try:
            self._store.mark_read_except(ticket_id, session.user_id)
        except StoreError as exc:
            logger.warning(f"[Rooms] Mark-read after join failed for ticket {ticket_id}: {exc}")
        return history

    def leave(self, session: Session, ticket_id: Optional[str] = None) -> None:
        """Unbind *session* from one room, or from all rooms if no id given."""
        if ticket_id is None:
            left = list(session.rooms)
            session.rooms.clear()
            session.current_ticket_room = None
        else:
            left = [ticket_id]
            session.rooms.discard(ticket_id)
            if session.current_ticket_room == ticket_id:
                session.current_ticket_room = None
            logger.debug(f"[Rooms] Session {session.session_id} left ticket {ticket_id}")

        for room in left:
            self._release_lock_if_empty(room)

    def disconnect(self, session: Session) -> None:
        """Drop every binding for *session* and remove it from the registry."""
        self.leave(session)
        self._registry.unregister(session)

    def members(self, ticket_id: str) -> List[Session]:
        return [s for s in self._registry.sessions() if ticket_id in s.rooms]

    def get_room_size(self, ticket_id: str) -> int:
        return len(self.members(ticket_id))

    def _release_lock_if_empty(self, ticket_id: str) -> None:
        lock = self._room_locks.get(ticket_id)
        if lock is not None and not lock.locked() and not self.members(ticket_id):
            del self._room_locks[ticket_id]

    # =========================================================================
    # Broadcasting
    # =========================================================================

    async def broadcast(self, ticket_id: str, payload: dict) -> List[Session]:
        """Send *payload* to every session bound to the ticket room.

        Returns:
            The sessions that received it.
        """
        if not self.members(ticket_id):
            return []

        lock = self._room_locks.setdefault(ticket_id, asyncio.Lock())
        async with lock:
            members = self.members(ticket_id)
            if not members:
                return []

            results = await asyncio.gather(
                *[member.send(payload) for member in members],
                return_exceptions=True,
            )

        delivered: List[Session] = []
        for member, success in zip(members, results):
            if success is True:
                delivered.append(member)
            else:
                # Dead connection: stop routing this room to it. The socket
                # handler unregisters the session when it notices.
                member.rooms.discard(ticket_id)
                logger.debug(f"[Rooms] Removed dead session {member.session_id} from ticket {ticket_id}")

        self._release_lock_if_empty(ticket_id)
        return delivered

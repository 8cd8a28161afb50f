"""Access policy for ticket chat.

Decides, per actor and ticket, whether the actor may read the ticket's
chat thread and whether they may post to it. Both the HTTP endpoints and
the WebSocket handlers call this module; there is no other copy of the
rules.

Policy Rules:
    1. service_desk: may view and send on every ticket, assigned or not
       (this is how staff pick up unassigned tickets).
    2. admin: may view every thread but does not post.
    3. standard: may view only tickets they reported, and may send only
       once the ticket has an assignee.
    4. Anything else is denied.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from servicedesk.directory.models import Ticket, User, UserRole
from servicedesk.errors import ForbiddenError, ForbiddenReason, NotFoundError


@dataclass(frozen=True)
class Actor:
    """Verified identity of whoever is making a request or sending an event.

    Resolved once per request or socket session; the role is the
    capability tag the policy branches on.
    """
    id: str
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, role=user.role)


@dataclass
class PolicyResult:
    """Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted.
        reason: Why it was denied (None if allowed).
    """
    allowed: bool
    reason: Optional[ForbiddenReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyResult(allowed=True)


class AccessPolicy:
    """Evaluates view/send permission for an (actor, ticket) pair.

    Pure: no I/O, no state. Ownership is read from ``assignedToId`` only,
    never from the ticket status.
    """

    def evaluate_view(self, actor: Actor, ticket: Optional[Ticket]) -> PolicyResult:
        ticket = self._require(ticket)

        if actor.role == UserRole.SERVICE_DESK:
            return ALLOW
        if actor.role == UserRole.ADMIN:
            return ALLOW
        if actor.role == UserRole.STANDARD and actor.id == ticket.reporterId:
            return ALLOW
        return PolicyResult(allowed=False, reason=ForbiddenReason.NO_RELATIONSHIP)

    def evaluate_send(self, actor: Actor, ticket: Optional[Ticket]) -> PolicyResult:
        ticket = self._require(ticket)

        if actor.role == UserRole.SERVICE_DESK:
            return ALLOW
        if actor.role == UserRole.STANDARD and actor.id == ticket.reporterId:
            if ticket.assignedToId is None:
                return PolicyResult(allowed=False, reason=ForbiddenReason.NOT_ASSIGNED)
            return ALLOW
        # Admins observe threads but do not take part in them.
        return PolicyResult(allowed=False, reason=ForbiddenReason.NO_RELATIONSHIP)

    def can_view(self, actor: Actor, ticket: Optional[Ticket]) -> bool:
        return self.evaluate_view(actor, ticket).allowed

    def can_send(self, actor: Actor, ticket: Optional[Ticket]) -> bool:
        return self.evaluate_send(actor, ticket).allowed

    def require_view(self, actor: Actor, ticket: Optional[Ticket]) -> Ticket:
        """Return the ticket if *actor* may view it, raise otherwise."""
        result = self.evaluate_view(actor, ticket)
        if not result:
            raise ForbiddenError(result.reason)
        return ticket

    def require_send(self, actor: Actor, ticket: Optional[Ticket]) -> Ticket:
        """Return the ticket if *actor* may post to it, raise otherwise."""
        result = self.evaluate_send(actor, ticket)
        if not result:
            raise ForbiddenError(result.reason)
        return ticket

    @staticmethod
    def _require(ticket: Optional[Ticket]) -> Ticket:
        if ticket is None:
            raise NotFoundError()
        return ticket

"""Ticket endpoints the chat flow depends on.

Endpoints:
    POST  /tickets                 - Report a ticket (reporter = caller)
    GET   /tickets/{ticket_id}     - Ticket details (same visibility as chat)
    PATCH /tickets/{ticket_id}/assign - Assign to a service-desk user
    PATCH /tickets/{ticket_id}/status - Change status
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from servicedesk.chat.policy import Actor
from servicedesk.deps import ChatServices, get_current_actor, get_services
from servicedesk.errors import ForbiddenError, ForbiddenReason

from .models import TicketAssign, TicketCreate, TicketStatusUpdate, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _require_role(actor: Actor, *roles: UserRole) -> None:
    if actor.role not in roles:
        raise ForbiddenError(
            ForbiddenReason.NO_RELATIONSHIP,
            "You do not have permission to perform this action",
        )


@router.post("", status_code=201)
async def create_ticket(
    body: TicketCreate,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    ticket = services.directory.create_ticket(
        reporter_id=actor.id,
        title=body.title,
        description=body.description,
        priority=body.priority,
    )
    return JSONResponse(
        {
            "success": True,
            "message": "Ticket created successfully",
            "data": {"ticket": ticket.model_dump(mode="json")},
        },
        status_code=201,
    )


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    ticket = services.policy.require_view(actor, services.directory.get_ticket(ticket_id))
    return JSONResponse({"success": True, "data": {"ticket": ticket.model_dump(mode="json")}})


@router.patch("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: str,
    body: TicketAssign,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    """Assign a ticket. Service desk only; defaults to assigning the caller."""
    _require_role(actor, UserRole.SERVICE_DESK)
    ticket = services.directory.assign_ticket(ticket_id, body.assigneeId or actor.id)
    logger.info("[tickets] %s assigned %s to %s", actor.id, ticket_id, ticket.assignedToId)
    return JSONResponse({
        "success": True,
        "message": "Ticket assigned successfully",
        "data": {"ticket": ticket.model_dump(mode="json")},
    })


@router.patch("/{ticket_id}/status")
async def update_ticket_status(
    ticket_id: str,
    body: TicketStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    _require_role(actor, UserRole.SERVICE_DESK, UserRole.ADMIN)
    ticket = services.directory.update_status(ticket_id, body.status)
    return JSONResponse({
        "success": True,
        "message": "Ticket status updated",
        "data": {"ticket": ticket.model_dump(mode="json")},
    })

"""Ticket chat router providing HTTP and WebSocket endpoints.

This module provides:
    - GET   /tickets/{ticket_id}/messages: Ordered thread (marks counterpart read)
    - POST  /tickets/{ticket_id}/messages: Send a message
    - PATCH /tickets/{ticket_id}/messages/read: Mark counterpart messages read
    - GET   /tickets/{ticket_id}/messages/unread: Unread counterpart count
    - WebSocket /ws/chat?token=...: Real-time ticket chat

Protocol Message Types (client -> server):
    - join-ticket: {type, ticketId}
    - leave-ticket: {type, ticketId}
    - send-message: {type, ticketId, content}

Protocol Message Types (server -> client):
    - connected: {type, sessionId, userId, role}
    - messages-loaded: {type, ticketId, messages}, private history snapshot
    - new-message: {type, message}, room broadcast
    - error: {type, message}, private failure notification
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from servicedesk.deps import ChatServices, get_current_actor, get_services
from servicedesk.errors import ServiceDeskError, ValidationError

from .policy import Actor
from .schemas import MessageCreate, messages_to_wire
from .sessions import Session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


# =============================================================================
# One-shot endpoints
# =============================================================================


@router.get("/tickets/{ticket_id}/messages")
async def get_ticket_messages(
    ticket_id: str,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    """Return the ticket's thread, oldest first.

    Opening the thread marks the counterpart's messages read.
    """
    messages = services.pipeline.open_thread(actor, ticket_id)
    return JSONResponse({
        "success": True,
        "count": len(messages),
        "data": {"messages": messages_to_wire(messages)},
    })


@router.post("/tickets/{ticket_id}/messages", status_code=201)
async def send_ticket_message(
    ticket_id: str,
    body: MessageCreate,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    """Post a message; it is also broadcast to the ticket room."""
    message = await services.pipeline.send(actor, ticket_id, body.content)
    return JSONResponse(
        {
            "success": True,
            "message": "Message sent successfully",
            "data": {"message": message.to_wire()},
        },
        status_code=201,
    )


@router.patch("/tickets/{ticket_id}/messages/read")
async def mark_ticket_messages_read(
    ticket_id: str,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    updated = services.pipeline.mark_read(actor, ticket_id)
    return JSONResponse({
        "success": True,
        "message": "Messages marked as read",
        "data": {"updated": updated},
    })


@router.get("/tickets/{ticket_id}/messages/unread")
async def get_unread_count(
    ticket_id: str,
    actor: Actor = Depends(get_current_actor),
    services: ChatServices = Depends(get_services),
) -> JSONResponse:
    count = services.pipeline.unread_count(actor, ticket_id)
    return JSONResponse({"success": True, "data": {"count": count}})


# =============================================================================
# WebSocket endpoint
# =============================================================================


@router.websocket("/ws/chat")
async def ticket_chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer token issued at login"),
) -> None:
    """WebSocket endpoint for real-time ticket chat.

    Protocol Flow:
        1. Client connects with ?token=... -> server verifies before accepting
           -> Server sends: {type: "connected", sessionId, userId, role}
        2. Client sends: {type: "join-ticket", ticketId}
           -> Server sends (private): {type: "messages-loaded", messages: [...]}
        3. Client sends: {type: "send-message", ticketId, content}
           -> Server broadcasts to the room: {type: "new-message", message}
        4. Any failure -> Server sends (private): {type: "error", message}

    Args:
        websocket: The WebSocket connection.
        token: Bearer token; the handshake is refused without a valid one.
    """
    services: ChatServices = websocket.app.state.services
    session = await services.registry.admit(websocket, token)
    if session is None:
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(session, "Invalid message format")
                continue
            if not isinstance(data, dict):
                await _send_error(session, "Invalid message format")
                continue

            logger.debug("[WS] Session %s received: type=%s", session.session_id, data.get("type", "?"))
            try:
                await _dispatch(services, session, data)
            except ServiceDeskError as exc:
                if exc.status_code >= 500:
                    logger.error(f"[WS] {data.get('type')} failed for session {session.session_id}: {exc}")
                await _send_error(session, exc.message)

    except WebSocketDisconnect:
        logger.info(f"[WS] Session {session.session_id} disconnected")
    finally:
        services.rooms.disconnect(session)


async def _dispatch(services: ChatServices, session: Session, data: dict) -> None:
    message_type = data.get("type")

    # --- Handle JOIN-TICKET ---
    if message_type == "join-ticket":
        ticket_id = _require_ticket_id(data)
        await services.rooms.join(session, ticket_id)
        return

    # --- Handle LEAVE-TICKET ---
    if message_type == "leave-ticket":
        services.rooms.leave(session, _require_ticket_id(data))
        return

    # --- Handle SEND-MESSAGE ---
    # SECURITY: sender identity comes from the session, never from the frame
    if message_type == "send-message":
        ticket_id = _require_ticket_id(data)
        await services.pipeline.send(
            session.actor, ticket_id, data.get("content"), origin=session
        )
        return

    raise ValidationError(f"Unknown message type: {message_type}")


def _require_ticket_id(data: dict) -> str:
    ticket_id = data.get("ticketId")
    if not ticket_id or not isinstance(ticket_id, str):
        raise ValidationError("ticketId is required")
    return ticket_id


async def _send_error(session: Session, message: str) -> None:
    await session.send({"type": "error", "message": message})

"""Registry of authenticated real-time sessions.

Every WebSocket connection must present a bearer token at handshake time.
The registry verifies it, resolves the user, and only then accepts the
connection. A connection that fails authentication is closed before it is
accepted, so it never owns any session state.

Lifecycle:
    The registry is constructed explicitly and passed to whoever needs it.
    ``start()`` opens it for admissions; ``stop()`` closes every live
    socket and refuses new ones.

Thread Safety:
    Designed for a single event loop. Session bookkeeping is only touched
    from handlers running on that loop; only the directory lookup during
    authentication runs in a worker thread.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set

from fastapi import WebSocket

from servicedesk.auth.tokens import TokenVerifier
from servicedesk.directory.models import User, UserRole
from servicedesk.directory.service import DirectoryService
from servicedesk.errors import AuthenticationError, ServiceDeskError

from .policy import Actor

logger = logging.getLogger(__name__)

# WebSocket close codes
CLOSE_AUTH_FAILED = 4001
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_GOING_AWAY = 1001


@dataclass(eq=False)
class Session:
    """One authenticated connection.

    Attributes:
        session_id: Backend-generated identifier.
        actor: Verified identity (id + role), fixed for the session.
        websocket: The underlying connection.
        rooms: Ticket ids this session currently receives broadcasts for.
        current_ticket_room: Ticket most recently joined, if any.
    """
    session_id: str
    actor: Actor
    websocket: WebSocket
    rooms: Set[str] = field(default_factory=set)
    current_ticket_room: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.actor.id

    @property
    def role(self) -> UserRole:
        return self.actor.role

    async def send(self, payload: dict) -> bool:
        """Send a frame to this session only.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await self.websocket.send_json(payload)
            return True
        except Exception as e:
            logger.debug(f"[Sessions] Failed to send to session {self.session_id}: {e}")
            return False


class SessionRegistry:
    """Authenticates connections and tracks the sessions they become."""

    def __init__(
        self,
        directory: DirectoryService,
        verifier: TokenVerifier,
        handshake_timeout: float = 10.0,
        max_sessions: int = 0,
    ) -> None:
        self._directory = directory
        self._verifier = verifier
        self.handshake_timeout = handshake_timeout
        self.max_sessions = max_sessions

        # session_id -> Session
        self._sessions: Dict[str, Session] = {}
        self._running = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        logger.info("[Sessions] Registry started")

    async def stop(self) -> None:
        """Refuse new sessions and close every live one."""
        self._running = False
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.websocket.close(code=CLOSE_GOING_AWAY)
            except Exception as e:
                logger.debug(f"[Sessions] Close failed for {session.session_id}: {e}")
        logger.info("[Sessions] Registry stopped (%d session(s) closed)", len(sessions))

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, token: Optional[str]) -> Actor:
        """Resolve a bearer token to an Actor within the handshake window.

        Raises:
            AuthenticationError: For any failure. The detail is logged here
                and never passed on to the client.
        """
        try:
            return await asyncio.wait_for(self._resolve(token), self.handshake_timeout)
        except AuthenticationError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "[Sessions] Authentication timed out after %ss", self.handshake_timeout
            )
            raise AuthenticationError()
        except ServiceDeskError as exc:
            logger.error("[Sessions] Directory lookup failed during authentication: %s", exc)
            raise AuthenticationError() from exc

    async def _resolve(self, token: Optional[str]) -> Actor:
        user_id = self._verifier.verify(token)
        user = await self._lookup_user(user_id)
        if user is None:
            logger.warning("[Sessions] Token subject %s no longer exists", user_id)
            raise AuthenticationError()
        return Actor.from_user(user)

    async def _lookup_user(self, user_id: str) -> Optional[User]:
        # Off the loop, so a slow directory cannot outlast the handshake window.
        return await asyncio.to_thread(self._directory.get_user, user_id)

    # =========================================================================
    # Admission
    # =========================================================================

    async def admit(self, websocket: WebSocket, token: Optional[str]) -> Optional[Session]:
        """Authenticate a handshake and, on success, accept and register it.

        Returns:
            The new Session, or None if the connection was refused (it has
            already been closed in that case).
        """
        if not self._running:
            logger.warning("[Sessions] Registry not running; refusing connection")
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
            return None

        if self.max_sessions > 0 and len(self._sessions) >= self.max_sessions:
            logger.warning(
                f"[Sessions] Session limit reached ({self.max_sessions}). "
                "Rejecting new connection."
            )
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
            return None

        try:
            actor = await self.authenticate(token)
        except AuthenticationError as exc:
            logger.info("[Sessions] Handshake rejected: %s", exc.message)
            await websocket.close(code=CLOSE_AUTH_FAILED, reason="Authentication error")
            return None

        await websocket.accept()
        session = Session(
            session_id=str(uuid.uuid4()),
            actor=actor,
            websocket=websocket,
        )
        self._sessions[session.session_id] = session
        logger.info(
            f"[Sessions] Session {session.session_id} admitted for user "
            f"{actor.id} ({actor.role.value}); {len(self._sessions)} active"
        )

        await session.send({
            "type": "connected",
            "sessionId": session.session_id,
            "userId": actor.id,
            "role": actor.role.value,
        })
        return session

    def unregister(self, session: Session) -> None:
        """Forget a session. Safe to call more than once."""
        if self._sessions.pop(session.session_id, None) is not None:
            logger.info(
                f"[Sessions] Session {session.session_id} closed; "
                f"{len(self._sessions)} active"
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def sessions_for_user(self, user_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    def __len__(self) -> int:
        return len(self._sessions)

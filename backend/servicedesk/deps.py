"""Component wiring and FastAPI dependencies.

Everything the request handlers need is built once in ``build_services``
and hung off ``app.state.services``. Nothing here is a module-level
singleton, so tests can build as many independent stacks as they like.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from servicedesk.auth.tokens import TokenVerifier, extract_bearer_token
from servicedesk.chat.pipeline import DeliveryPipeline
from servicedesk.chat.policy import AccessPolicy, Actor
from servicedesk.chat.rooms import RoomManager
from servicedesk.chat.sessions import SessionRegistry
from servicedesk.chat.store import MessageStore
from servicedesk.config import AppSettings
from servicedesk.db import Database
from servicedesk.directory.service import DirectoryService

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    """Every component of one running service instance."""
    settings: AppSettings
    db: Database
    directory: DirectoryService
    store: MessageStore
    verifier: TokenVerifier
    policy: AccessPolicy
    registry: SessionRegistry
    rooms: RoomManager
    pipeline: DeliveryPipeline


def build_services(settings: AppSettings) -> ChatServices:
    """Construct and connect all components from *settings*."""
    db = Database(settings.database.path)
    directory = DirectoryService(db)
    store = MessageStore(db, max_length=settings.chat.max_message_length)
    jwt_secrets = settings.secrets.jwt
    verifier = TokenVerifier(
        secret_key=jwt_secrets.secret_key,
        algorithm=jwt_secrets.algorithm,
        expire_minutes=jwt_secrets.expire_minutes,
    )
    policy = AccessPolicy()
    registry = SessionRegistry(
        directory,
        verifier,
        handshake_timeout=settings.sessions.handshake_timeout_seconds,
        max_sessions=settings.sessions.max_sessions,
    )
    rooms = RoomManager(registry, directory, store, policy)
    pipeline = DeliveryPipeline(directory, store, policy, rooms)
    return ChatServices(
        settings=settings,
        db=db,
        directory=directory,
        store=store,
        verifier=verifier,
        policy=policy,
        registry=registry,
        rooms=rooms,
        pipeline=pipeline,
    )


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


async def get_current_actor(
    services: ChatServices = Depends(get_services),
    authorization: Optional[str] = Header(None),
) -> Actor:
    """Resolve the bearer token on an HTTP request to an Actor.

    Raises:
        AuthenticationError: Missing, invalid or orphaned token (401).
    """
    token = extract_bearer_token(authorization)
    return await services.registry.authenticate(token)

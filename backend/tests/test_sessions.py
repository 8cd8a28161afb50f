"""Tests for the session registry: handshake auth, admission, lifecycle."""
import time

import jwt
import pytest

from servicedesk.chat.sessions import (
    CLOSE_AUTH_FAILED,
    CLOSE_GOING_AWAY,
    CLOSE_TRY_AGAIN_LATER,
)
from servicedesk.directory.models import UserRole
from servicedesk.errors import AuthenticationError


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_valid_token_resolves_actor(self, services, people):
        token = services.verifier.issue(people.desk.id)
        actor = await services.registry.authenticate(token)
        assert actor.id == people.desk.id
        assert actor.role == UserRole.SERVICE_DESK

    @pytest.mark.asyncio
    async def test_missing_token(self, services):
        with pytest.raises(AuthenticationError):
            await services.registry.authenticate(None)

    @pytest.mark.asyncio
    async def test_garbage_token(self, services):
        with pytest.raises(AuthenticationError) as exc_info:
            await services.registry.authenticate("not-a-jwt")
        assert exc_info.value.message == "Authentication error"

    @pytest.mark.asyncio
    async def test_token_signed_with_other_key(self, services, people):
        token = jwt.encode({"sub": people.desk.id}, "a-completely-different-secret-key-0000", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            await services.registry.authenticate(token)

    @pytest.mark.asyncio
    async def test_legacy_id_claim_accepted(self, services, people):
        token = jwt.encode(
            {"id": people.reporter.id},
            services.settings.secrets.jwt.secret_key,
            algorithm="HS256",
        )
        actor = await services.registry.authenticate(token)
        assert actor.id == people.reporter.id

    @pytest.mark.asyncio
    async def test_deleted_user_rejected(self, services):
        token = services.verifier.issue("user-that-was-removed")
        with pytest.raises(AuthenticationError) as exc_info:
            await services.registry.authenticate(token)
        assert exc_info.value.message == "Authentication error"

    @pytest.mark.asyncio
    async def test_slow_directory_lookup_times_out(self, services, people, monkeypatch):
        def slow_get_user(user_id):
            time.sleep(0.5)
            return people.desk

        services.registry.handshake_timeout = 0.05
        monkeypatch.setattr(services.directory, "get_user", slow_get_user)
        token = services.verifier.issue(people.desk.id)

        started = time.monotonic()
        with pytest.raises(AuthenticationError) as exc_info:
            await services.registry.authenticate(token)
        assert time.monotonic() - started < 0.4
        assert exc_info.value.message == "Authentication error"

    @pytest.mark.asyncio
    async def test_slow_directory_lookup_refuses_handshake(self, services, people, make_ws, monkeypatch):
        def slow_get_user(user_id):
            time.sleep(0.5)
            return people.desk

        services.registry.handshake_timeout = 0.05
        monkeypatch.setattr(services.directory, "get_user", slow_get_user)
        ws = make_ws()

        session = await services.registry.admit(ws, services.verifier.issue(people.desk.id))

        assert session is None
        assert ws.accepted is False
        assert ws.close_code == CLOSE_AUTH_FAILED
        assert len(services.registry) == 0


class TestAdmit:
    @pytest.mark.asyncio
    async def test_admits_and_announces_identity(self, services, people, make_ws):
        ws = make_ws()
        session = await services.registry.admit(ws, services.verifier.issue(people.reporter.id))

        assert session is not None
        assert ws.accepted is True
        assert len(services.registry) == 1
        assert session.current_ticket_room is None
        connected = ws.sent[0]
        assert connected == {
            "type": "connected",
            "sessionId": session.session_id,
            "userId": people.reporter.id,
            "role": "standard",
        }

    @pytest.mark.asyncio
    async def test_bad_token_closes_before_accept(self, services, make_ws):
        ws = make_ws()
        session = await services.registry.admit(ws, "bogus")

        assert session is None
        assert ws.accepted is False
        assert ws.close_code == CLOSE_AUTH_FAILED
        assert ws.close_reason == "Authentication error"
        assert ws.sent == []
        assert len(services.registry) == 0

    @pytest.mark.asyncio
    async def test_refused_when_not_started(self, services, people, make_ws):
        await services.registry.stop()
        ws = make_ws()
        session = await services.registry.admit(ws, services.verifier.issue(people.desk.id))
        assert session is None
        assert ws.close_code == CLOSE_TRY_AGAIN_LATER

    @pytest.mark.asyncio
    async def test_session_limit(self, services, people, make_ws):
        services.registry.max_sessions = 1
        token = services.verifier.issue(people.desk.id)
        assert await services.registry.admit(make_ws(), token) is not None

        ws = make_ws()
        assert await services.registry.admit(ws, token) is None
        assert ws.close_code == CLOSE_TRY_AGAIN_LATER
        assert len(services.registry) == 1

    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self, services, people, make_ws):
        session = await services.registry.admit(make_ws(), services.verifier.issue(people.desk.id))
        services.registry.unregister(session)
        services.registry.unregister(session)
        assert len(services.registry) == 0
        assert services.registry.get(session.session_id) is None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_closes_every_session(self, services, people, make_ws):
        sockets = [make_ws(), make_ws()]
        for ws, user in zip(sockets, (people.reporter, people.desk)):
            await services.registry.admit(ws, services.verifier.issue(user.id))

        await services.registry.stop()

        assert services.registry.running is False
        assert len(services.registry) == 0
        assert all(ws.close_code == CLOSE_GOING_AWAY for ws in sockets)

    @pytest.mark.asyncio
    async def test_sessions_for_user(self, services, people, make_ws):
        token = services.verifier.issue(people.desk.id)
        await services.registry.admit(make_ws(), token)
        await services.registry.admit(make_ws(), token)
        await services.registry.admit(make_ws(), services.verifier.issue(people.reporter.id))
        assert len(services.registry.sessions_for_user(people.desk.id)) == 2

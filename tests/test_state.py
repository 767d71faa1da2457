"""
Tests for signed OAuth state tokens and single-use nonce storage.
"""

import asyncio
from datetime import timedelta

import pytest

from connectors.errors import InvalidState
from connectors.schemas import AuthorizationState, FlowPhase, utcnow
from connectors.state import InMemoryStateStore, SqlStateStore, sign_state, verify_state

TTL = timedelta(minutes=10)


def _state(nonce="abc", **overrides):
    fields = dict(
        nonce=nonce,
        provider="twitter",
        user_id="user-1",
        redirect_uri="http://testserver/api/v1/connectors/twitter/callback",
        code_verifier="verifier-123",
        phase=FlowPhase.AWAITING_CALLBACK,
    )
    fields.update(overrides)
    return AuthorizationState(**fields)


class TestStateToken:
    def test_round_trip(self):
        assert verify_state(sign_state("abc", "youtube")) == ("abc", "youtube")

    def test_wrong_secret(self):
        token = sign_state("abc", "youtube", secret="one")
        with pytest.raises(InvalidState):
            verify_state(token, secret="two")

    def test_modified_payload(self):
        token = sign_state("abc", "youtube")
        other = sign_state("abd", "youtube")
        with pytest.raises(InvalidState):
            verify_state(other.split(".")[0] + "." + token.split(".")[1])

    @pytest.mark.parametrize("garbage", ["", "no-dot", "!!!.???", "e30.deadbeef"])
    def test_garbage(self, garbage):
        with pytest.raises(InvalidState):
            verify_state(garbage)


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "memory":
        return InMemoryStateStore()
    return SqlStateStore(session_factory)


class TestStateStore:
    @pytest.mark.asyncio
    async def test_consume_once(self, store):
        await store.save(_state())

        consumed = await store.consume("abc", TTL)

        assert consumed.consumed is True
        assert consumed.code_verifier == "verifier-123"
        assert consumed.user_id == "user-1"
        assert consumed.provider == "twitter"
        with pytest.raises(InvalidState):
            await store.consume("abc", TTL)

    @pytest.mark.asyncio
    async def test_unknown_nonce(self, store):
        with pytest.raises(InvalidState):
            await store.consume("missing", TTL)

    @pytest.mark.asyncio
    async def test_expired_nonce(self, store):
        await store.save(_state(created_at=utcnow() - timedelta(minutes=11)))
        with pytest.raises(InvalidState):
            await store.consume("abc", TTL)

    @pytest.mark.asyncio
    async def test_purge_expired(self, store):
        await store.save(_state("old", created_at=utcnow() - timedelta(hours=1)))
        await store.save(_state("used"))
        await store.save(_state("fresh"))
        await store.consume("used", TTL)

        assert await store.purge_expired(TTL) == 2
        assert (await store.consume("fresh", TTL)).nonce == "fresh"


class TestConcurrentConsume:
    @pytest.mark.asyncio
    async def test_only_one_concurrent_consume_wins(self):
        store = InMemoryStateStore()
        await store.save(_state())

        results = await asyncio.gather(
            *(store.consume("abc", TTL) for _ in range(5)), return_exceptions=True
        )

        assert sum(isinstance(r, AuthorizationState) for r in results) == 1
        assert sum(isinstance(r, InvalidState) for r in results) == 4

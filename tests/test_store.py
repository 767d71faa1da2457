"""
Tests for the token stores — optimistic writes on both backends and
encryption at rest on the SQL one.
"""

import pytest
from sqlalchemy import select

from connectors.errors import VersionConflict
from connectors.schemas import ConnectionStatus
from connectors.store import InMemoryTokenStore, SqlTokenStore
from database.models import UserConnection


@pytest.fixture(params=["memory", "sql"])
def store_factory(request, session_factory):
    def _build():
        if request.param == "memory":
            return InMemoryTokenStore()
        return SqlTokenStore(session_factory)

    return _build


class TestTokenStoreContract:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, store_factory, make_record):
        store = store_factory()
        inserted = await store.insert(make_record(version=7))

        assert inserted.version == 1
        fetched = await store.get("user-1", "youtube")
        assert fetched.access_token == "old-access"
        assert fetched.refresh_token == "old-refresh"
        assert fetched.scopes == ["youtube.readonly"]
        assert fetched.status == ConnectionStatus.ACTIVE
        assert fetched.version == 1
        assert fetched.expires_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, store_factory):
        assert await store_factory().get("user-1", "youtube") is None

    @pytest.mark.asyncio
    async def test_duplicate_insert_conflicts(self, store_factory, make_record):
        store = store_factory()
        await store.insert(make_record())
        with pytest.raises(VersionConflict):
            await store.insert(make_record(access_token="other"))
        assert (await store.get("user-1", "youtube")).access_token == "old-access"

    @pytest.mark.asyncio
    async def test_compare_and_swap_bumps_version(self, store_factory, make_record):
        store = store_factory()
        current = await store.insert(make_record())

        updated = await store.compare_and_swap(
            current.model_copy(update={"access_token": "new-access", "refresh_token": "new-refresh"}),
            current.version,
        )

        assert updated.version == 2
        fetched = await store.get("user-1", "youtube")
        assert fetched.version == 2
        assert (fetched.access_token, fetched.refresh_token) == ("new-access", "new-refresh")

    @pytest.mark.asyncio
    async def test_stale_compare_and_swap_never_overwrites(self, store_factory, make_record):
        store = store_factory()
        current = await store.insert(make_record())
        await store.compare_and_swap(current.model_copy(update={"access_token": "first"}), 1)

        with pytest.raises(VersionConflict):
            await store.compare_and_swap(current.model_copy(update={"access_token": "second"}), 1)

        fetched = await store.get("user-1", "youtube")
        assert fetched.access_token == "first"
        assert fetched.version == 2

    @pytest.mark.asyncio
    async def test_compare_and_swap_missing_record(self, store_factory, make_record):
        with pytest.raises(VersionConflict):
            await store_factory().compare_and_swap(make_record(), 1)

    @pytest.mark.asyncio
    async def test_list_for_user(self, store_factory, make_record):
        store = store_factory()
        await store.insert(make_record(provider="youtube"))
        await store.insert(make_record(provider="linkedin", refresh_token=None))
        await store.insert(make_record(user_id="user-2"))

        records = await store.list_for_user("user-1")

        assert [r.provider for r in records] == ["linkedin", "youtube"]


class TestSqlEncryptionAtRest:
    @pytest.mark.asyncio
    async def test_tokens_are_encrypted_in_the_row(self, session_factory, make_record):
        store = SqlTokenStore(session_factory)
        await store.insert(make_record())

        async with session_factory() as session:
            row = (await session.execute(select(UserConnection))).scalar_one()

        assert row.access_token != "old-access"
        assert "old-access" not in row.access_token
        assert row.refresh_token != "old-refresh"
        assert row.version == 1

    @pytest.mark.asyncio
    async def test_missing_refresh_token_stays_null(self, session_factory, make_record):
        store = SqlTokenStore(session_factory)
        await store.insert(make_record(provider="linkedin", refresh_token=None))

        async with session_factory() as session:
            row = (await session.execute(select(UserConnection))).scalar_one()

        assert row.refresh_token is None
        assert (await store.get("user-1", "linkedin")).refresh_token is None

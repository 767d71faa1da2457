"""
Token store — durable, keyed storage of connection records.

All writes are optimistic: ``insert`` creates version 1 and fails if the
(user, provider) key already exists; ``compare_and_swap`` writes every token
field at once and only if the stored version still equals the expected one,
bumping it by exactly one.  Either way a lost race surfaces as
``VersionConflict``; nothing is ever silently overwritten.

Two backends:

  • InMemoryTokenStore  single-process deployments and tests
  • SqlTokenStore       SQLAlchemy, tokens Fernet-encrypted at rest
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import decrypt_optional, decrypt_token, encrypt_optional, encrypt_token
from connectors.errors import StoreUnavailable, VersionConflict
from connectors.schemas import ConnectionRecord, ConnectionStatus, utcnow
from database.models import UserConnection

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Interface shared by every backend."""

    @abstractmethod
    async def get(self, user_id: str, provider: str) -> Optional[ConnectionRecord]:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[ConnectionRecord]:
        ...

    @abstractmethod
    async def insert(self, record: ConnectionRecord) -> ConnectionRecord:
        """Store a brand-new record as version 1."""
        ...

    @abstractmethod
    async def compare_and_swap(
        self, record: ConnectionRecord, expected_version: int
    ) -> ConnectionRecord:
        """Replace the stored record if its version is ``expected_version``."""
        ...


# ── In-memory ──────────────────────────────────────────────────────────────


class InMemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], ConnectionRecord] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: str, provider: str) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._records.get((user_id, provider))

    async def list_for_user(self, user_id: str) -> List[ConnectionRecord]:
        with self._lock:
            return [r for (uid, _), r in sorted(self._records.items()) if uid == user_id]

    async def insert(self, record: ConnectionRecord) -> ConnectionRecord:
        stored = record.model_copy(update={"version": 1, "updated_at": utcnow()})
        with self._lock:
            if record.key in self._records:
                raise VersionConflict(
                    f"Connection already exists for {record.provider}", provider=record.provider
                )
            self._records[record.key] = stored
        return stored

    async def compare_and_swap(
        self, record: ConnectionRecord, expected_version: int
    ) -> ConnectionRecord:
        stored = record.model_copy(
            update={"version": expected_version + 1, "updated_at": utcnow()}
        )
        with self._lock:
            current = self._records.get(record.key)
            if current is None or current.version != expected_version:
                raise VersionConflict(
                    f"Stale write for {record.provider}: expected v{expected_version}, "
                    f"found v{current.version if current else None}",
                    provider=record.provider,
                )
            self._records[record.key] = stored
        return stored


# ── SQLAlchemy ─────────────────────────────────────────────────────────────


def _row_values(record: ConnectionRecord) -> Dict[str, Any]:
    """Column values for ``record`` with secrets encrypted."""
    return {
        "access_token": encrypt_token(record.access_token),
        "refresh_token": encrypt_optional(record.refresh_token),
        "expires_at": record.expires_at,
        "scopes": list(record.scopes),
        "status": record.status.value,
        "last_refreshed": record.last_refreshed_at,
        "account_id": record.account_id,
        "account_label": record.account_label,
        "connected_at": record.connected_at,
        "error_message": record.error_message,
    }


def _to_record(row: UserConnection) -> ConnectionRecord:
    return ConnectionRecord(
        user_id=row.user_id,
        provider=row.provider,
        access_token=decrypt_token(row.access_token),
        refresh_token=decrypt_optional(row.refresh_token),
        expires_at=row.expires_at,
        scopes=row.scopes or [],
        status=ConnectionStatus(row.status),
        last_refreshed_at=row.last_refreshed,
        version=row.version,
        account_id=row.account_id,
        account_label=row.account_label,
        connected_at=row.connected_at,
        updated_at=row.updated_at,
        error_message=row.error_message,
    )


class SqlTokenStore(TokenStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str, provider: str) -> Optional[ConnectionRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(UserConnection).where(
                        UserConnection.user_id == user_id,
                        UserConnection.provider == provider,
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("get connection failed for %s/%s: %s", provider, user_id, exc)
            raise StoreUnavailable(f"Token store read failed: {exc}", provider=provider) from exc
        return _to_record(row) if row else None

    async def list_for_user(self, user_id: str) -> List[ConnectionRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(UserConnection)
                    .where(UserConnection.user_id == user_id)
                    .order_by(UserConnection.provider)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("list connections failed for %s: %s", user_id, exc)
            raise StoreUnavailable(f"Token store read failed: {exc}") from exc
        return [_to_record(r) for r in rows]

    async def insert(self, record: ConnectionRecord) -> ConnectionRecord:
        values = _row_values(record)
        now = utcnow()
        try:
            async with self._session_factory() as session:
                session.add(
                    UserConnection(
                        user_id=record.user_id,
                        provider=record.provider,
                        version=1,
                        updated_at=now,
                        **values,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    raise VersionConflict(
                        f"Connection already exists for {record.provider}",
                        provider=record.provider,
                    ) from exc
        except SQLAlchemyError as exc:
            logger.error("insert connection failed for %s/%s: %s", record.provider, record.user_id, exc)
            raise StoreUnavailable(f"Token store write failed: {exc}", provider=record.provider) from exc
        return record.model_copy(update={"version": 1, "updated_at": now})

    async def compare_and_swap(
        self, record: ConnectionRecord, expected_version: int
    ) -> ConnectionRecord:
        values = _row_values(record)
        now = utcnow()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(UserConnection)
                    .where(
                        UserConnection.user_id == record.user_id,
                        UserConnection.provider == record.provider,
                        UserConnection.version == expected_version,
                    )
                    .values(version=expected_version + 1, updated_at=now, **values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    raise VersionConflict(
                        f"Stale write for {record.provider}: expected v{expected_version}",
                        provider=record.provider,
                    )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("update connection failed for %s/%s: %s", record.provider, record.user_id, exc)
            raise StoreUnavailable(f"Token store write failed: {exc}", provider=record.provider) from exc
        return record.model_copy(update={"version": expected_version + 1, "updated_at": now})

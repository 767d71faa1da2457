"""
SQLAlchemy ORM models for connection records and OAuth authorization state.

Generic column types (``Uuid``, ``JSON``) keep the schema portable between
PostgreSQL in production and SQLite in the test suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserConnection(Base):
    __tablename__ = "user_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_connections_user_provider"),
    )

    connection_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    account_label = Column(String(256))
    account_id = Column(String(256))
    access_token = Column(Text, nullable=False)     # Fernet ciphertext
    refresh_token = Column(Text)                    # Fernet ciphertext
    expires_at = Column(DateTime(timezone=True))
    scopes = Column(JSON, default=list)
    status = Column(String(16), nullable=False, default="active")
    version = Column(Integer, nullable=False, default=1)
    connected_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_refreshed = Column(DateTime(timezone=True))
    error_message = Column(Text)


class OAuthState(Base):
    __tablename__ = "oauth_states"
    __table_args__ = (Index("ix_oauth_states_created_at", "created_at"),)

    nonce = Column(String(128), primary_key=True)
    provider = Column(String(32), nullable=False)
    user_id = Column(String(128), nullable=False)
    redirect_uri = Column(Text, nullable=False)
    code_verifier = Column(String(256))
    phase = Column(String(32), nullable=False, default="awaiting_callback")
    created_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True))

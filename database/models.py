"""
SQLAlchemy ORM models for memberships, vaulted credentials and the audit log.

Column types degrade to portable equivalents off PostgreSQL so the same
models run against SQLite in tests.
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
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

_JSON = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Member(Base):
    """Organization membership, owned by the identity service; read-only here."""

    __tablename__ = "members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    org_id = Column(String(64), nullable=False)
    role = Column(String(32), nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("user_id", "org_id", name="uq_members_user_org"),)


class IntegrationCredential(Base):
    """Encrypted provider credentials, one row per (org_id, provider)."""

    __tablename__ = "integration_credentials"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    scope = Column(Text)
    provider_meta = Column(_JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="connected")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "provider", name="uq_integration_credentials_org_provider"),
    )


class AuditLogEntry(Base):
    """Append-only, hash-chained security event."""

    __tablename__ = "audit_log"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False)
    resource_type = Column(String(32), nullable=False)
    details = Column(_JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    prev_hash = Column(String(64), nullable=False)
    entry_hash = Column(String(64), nullable=False, unique=True)

    __table_args__ = (Index("ix_audit_log_action_created", "action", "created_at"),)

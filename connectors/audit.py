"""
AuditSink — append-only, hash-chained security events.

Each row stores ``prev_hash`` (the previous row's ``entry_hash``) and
``entry_hash = sha256(prev_hash + canonical_json(event))``.  Editing or
deleting any row breaks every later link, which ``verify_chain`` detects.

Appends are serialized: an in-process ``asyncio.Lock`` orders writers in one
worker, and on PostgreSQL a transaction-scoped advisory lock orders writers
across workers, so two events can never link to the same predecessor.

Recording is best-effort: a failed audit write is logged and never fails the
request that triggered it.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import AuditLogEntry
from utils.redaction import redact_id

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

# Arbitrary 64-bit key shared by every writer of the audit chain
AUDIT_CHAIN_LOCK_KEY = 0x0A0D17C4A1


async def lock_chain_head(session: AsyncSession) -> None:
    """Block until this transaction owns the chain head (PostgreSQL only)."""
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": AUDIT_CHAIN_LOCK_KEY}
        )


class AuditAction(str, Enum):
    STATE_MISMATCH = "oauth_state_mismatch"      # wrong subject or forged signature
    STATE_REJECTED = "oauth_state_rejected"      # malformed or expired
    EXCHANGE_FAILED = "oauth_exchange_failed"


class AuditEvent(BaseModel):
    actor_id: str
    action: AuditAction
    resource_type: str = "integration"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _canonical_ts(ts: datetime) -> str:
    # SQLite hands back naive UTC, PostgreSQL aware UTC; hash the naive form
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts.isoformat(timespec="microseconds")


def compute_entry_hash(
    prev_hash: str,
    actor_id: str,
    action: str,
    resource_type: str,
    details: Dict[str, Any],
    timestamp: datetime,
) -> str:
    canonical = json.dumps(
        {
            "actor_id": actor_id,
            "action": action,
            "resource_type": resource_type,
            "metadata": details,
            "timestamp": _canonical_ts(timestamp),
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256((prev_hash + canonical).encode("utf-8")).hexdigest()


def verify_chain(
    rows: Sequence[AuditLogEntry],
    start_hash: str = GENESIS_HASH,
) -> Optional[int]:
    """
    Recompute the chain over ``rows`` (ordered by ``seq``).

    Returns the index of the first row whose link or hash does not match,
    or None if the chain is intact.
    """
    prev = start_hash
    for index, row in enumerate(rows):
        expected = compute_entry_hash(
            prev, row.actor_id, row.action, row.resource_type, row.details or {}, row.created_at
        )
        if row.prev_hash != prev or row.entry_hash != expected:
            return index
        prev = row.entry_hash
    return None


class AuditSink:
    """Writes ``AuditEvent``s to the ``audit_log`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    async def record(self, event: AuditEvent) -> None:
        """Append ``event``; failures are logged at WARNING and swallowed."""
        try:
            async with self._lock, self._session_factory() as session:
                async with session.begin():
                    await lock_chain_head(session)
                    result = await session.execute(
                        select(AuditLogEntry.entry_hash)
                        .order_by(AuditLogEntry.seq.desc())
                        .limit(1)
                    )
                    prev_hash = result.scalar_one_or_none() or GENESIS_HASH
                    details = json.loads(json.dumps(event.metadata, default=str))
                    session.add(
                        AuditLogEntry(
                            actor_id=event.actor_id,
                            action=event.action.value,
                            resource_type=event.resource_type,
                            details=details,
                            created_at=event.timestamp,
                            prev_hash=prev_hash,
                            entry_hash=compute_entry_hash(
                                prev_hash,
                                event.actor_id,
                                event.action.value,
                                event.resource_type,
                                details,
                                event.timestamp,
                            ),
                        )
                    )
        except Exception:
            logger.warning(
                "Audit write failed: action=%s actor=%s",
                event.action.value,
                redact_id(event.actor_id),
                exc_info=True,
            )
            return

        logger.info("Audit event recorded: %s (actor %s)", event.action.value, redact_id(event.actor_id))

    async def verify(self) -> Optional[int]:
        """Load the whole log and run ``verify_chain`` over it."""
        async with self._session_factory() as session:
            result = await session.execute(select(AuditLogEntry).order_by(AuditLogEntry.seq))
            return verify_chain(result.scalars().all())

"""
Organization membership lookups (read-only view of the ``members`` table).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Member


class MembershipDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_org_id(self, user_id: str) -> Optional[str]:
        """Return the caller's organization, or None if they belong to none."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Member.org_id)
                .where(Member.user_id == user_id)
                .order_by(Member.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def is_member(self, user_id: str, org_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Member.id).where(Member.user_id == user_id, Member.org_id == org_id)
            )
            return result.scalar_one_or_none() is not None

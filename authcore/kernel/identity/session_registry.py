"""
Session registry: persisted refresh sessions keyed by opaque token.

Refresh tokens are single-use. ``redeem`` deletes the record in the same
statement that finds it, so of two concurrent redemptions of one value at
most one gets the owner back.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.errors import InvalidOrExpiredSessionError
from authcore.kernel.identity.tokens import generate_opaque_token, hash_token
from authcore.kernel.models.base import utcnow
from authcore.kernel.models.user import RefreshSession
from authcore.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OpenedSession:
    """The opaque value is handed out here once and never stored in clear."""

    token: str
    expires_at: datetime


class SessionRegistry:
    """Create, redeem and close refresh sessions."""

    def __init__(self, session: AsyncSession, ttl: timedelta = timedelta(days=7)):
        self.session = session
        self.ttl = ttl

    async def open(
        self,
        user_id: uuid.UUID,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OpenedSession:
        """Persist a new session for ``user_id`` and return its token."""
        token = generate_opaque_token()
        expires_at = (now or utcnow()) + self.ttl
        self.session.add(
            RefreshSession(
                user_id=user_id,
                token_hash=hash_token(token),
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
            )
        )
        await self.session.flush()
        return OpenedSession(token=token, expires_at=expires_at)

    async def redeem(self, token: str, now: Optional[datetime] = None) -> uuid.UUID:
        """
        Consume a refresh token and return the owning identity id.

        The record is removed whether or not it has expired, so an expired
        value is cleaned up on its first presentation.

        Raises:
            InvalidOrExpiredSessionError: unknown, already used, or expired
        """
        stmt = (
            delete(RefreshSession)
            .where(RefreshSession.token_hash == hash_token(token))
            .returning(RefreshSession.user_id, RefreshSession.expires_at)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            raise InvalidOrExpiredSessionError()

        user_id, expires_at = row
        if expires_at <= (now or utcnow()):
            logger.info("Expired refresh session presented", extra={"user_id": str(user_id)})
            raise InvalidOrExpiredSessionError()
        return user_id

    async def close(self, token: str) -> Optional[uuid.UUID]:
        """
        Delete the session for ``token`` and return its owner.

        Unknown or already-closed tokens are not an error; they return None.
        """
        stmt = (
            delete(RefreshSession)
            .where(RefreshSession.token_hash == hash_token(token))
            .returning(RefreshSession.user_id)
            .execution_options(synchronize_session=False)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def close_all(self, user_id: uuid.UUID) -> int:
        """Delete every session belonging to ``user_id``."""
        stmt = (
            delete(RefreshSession)
            .where(RefreshSession.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Housekeeping: drop sessions whose expiry has passed."""
        stmt = (
            delete(RefreshSession)
            .where(RefreshSession.expires_at <= (now or utcnow()))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            logger.info("Purged expired refresh sessions", extra={"count": result.rowcount})
        return result.rowcount

    async def count_active(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> int:
        query = select(func.count(RefreshSession.id)).where(
            RefreshSession.user_id == user_id,
            RefreshSession.expires_at > (now or utcnow()),
        )
        result = await self.session.execute(query)
        return result.scalar() or 0

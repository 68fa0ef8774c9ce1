"""
Identity-proof state: email verification and password reset tokens.

Each identity carries at most one active token per purpose, stored on the
user row. Issuing overwrites; redeeming is a conditional update that
matches only while the token is still set and unexpired, and clears it in
the same statement. The loser of a concurrent redemption matches no row.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.errors import InvalidOrExpiredTokenError
from authcore.kernel.identity.credential_store import CredentialStore
from authcore.kernel.identity.tokens import issue_token
from authcore.kernel.models.base import utcnow
from authcore.kernel.models.user import ProofPurpose, ProofToken, User
from authcore.logging_config import get_logger

logger = get_logger(__name__)


class IdentityProofs:
    """Issue and redeem verification and reset tokens."""

    def __init__(
        self,
        session: AsyncSession,
        credentials: CredentialStore,
        verification_ttl: timedelta = timedelta(hours=1),
        reset_ttl: timedelta = timedelta(hours=1),
    ):
        self.session = session
        self.credentials = credentials
        self.ttls = {
            ProofPurpose.VERIFICATION: verification_ttl,
            ProofPurpose.RESET: reset_ttl,
        }

    async def issue(
        self,
        user: User,
        purpose: ProofPurpose,
        now: Optional[datetime] = None,
    ) -> ProofToken:
        """Generate a token for ``purpose``, replacing any active one."""
        token = issue_token(self.ttls[purpose], now=now)
        user.set_proof(purpose, token)
        await self.session.flush()
        return token

    async def issue_verification(self, user: User, now: Optional[datetime] = None) -> ProofToken:
        return await self.issue(user, ProofPurpose.VERIFICATION, now=now)

    async def issue_reset(self, user: User, now: Optional[datetime] = None) -> ProofToken:
        return await self.issue(user, ProofPurpose.RESET, now=now)

    async def redeem_verification(self, token: str, now: Optional[datetime] = None) -> User:
        """
        Mark the identity holding ``token`` as verified and clear the token.

        Raises:
            InvalidOrExpiredTokenError: unknown, already redeemed, superseded or expired
        """
        moment = now or utcnow()
        stmt = (
            update(User)
            .where(
                User.verification_token == token,
                User.verification_token_expires_at > moment,
            )
            .values(
                is_verified=True,
                verification_token=None,
                verification_token_expires_at=None,
            )
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        user_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if user_id is None:
            raise InvalidOrExpiredTokenError("Invalid or expired verification token")

        user = await self.credentials.reload(user_id)
        if user is None:
            raise InvalidOrExpiredTokenError("Invalid or expired verification token")
        return user

    async def redeem_reset(
        self,
        token: str,
        new_password: str,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Claim the reset token, then replace the password in the same transaction.

        Raises:
            InvalidOrExpiredTokenError: unknown, already redeemed, superseded or expired
        """
        moment = now or utcnow()
        stmt = (
            update(User)
            .where(
                User.reset_token == token,
                User.reset_token_expires_at > moment,
            )
            .values(reset_token=None, reset_token_expires_at=None)
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        user_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if user_id is None:
            raise InvalidOrExpiredTokenError("Invalid or expired reset token")

        user = await self.credentials.reload(user_id)
        if user is None:
            raise InvalidOrExpiredTokenError("Invalid or expired reset token")
        await self.credentials.mutate_password(user, new_password)
        return user

"""
Authentication gate.

Unauthenticated -> TokenVerified -> Authenticated, with a separate
Authenticated -> AdminAuthorized step. Any failed step stops the request.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.errors import ForbiddenError, UnauthenticatedError
from authcore.kernel.identity.credential_store import CredentialStore
from authcore.kernel.identity.jwt import JWTManager, TokenError, get_jwt_manager
from authcore.kernel.models.user import User
from authcore.logging_config import get_logger

logger = get_logger(__name__)


class AuthenticationGate:
    """Resolve an access token to a current identity."""

    def __init__(
        self,
        session: AsyncSession,
        jwt_manager: Optional[JWTManager] = None,
        credentials: Optional[CredentialStore] = None,
    ):
        self.jwt_manager = jwt_manager or get_jwt_manager()
        self.credentials = credentials or CredentialStore(session)

    async def authenticate(self, access_token: Optional[str]) -> User:
        """
        Verify ``access_token`` and load its identity from the store.

        Claims other than the subject are not trusted; role and profile
        come from the fresh lookup.

        Raises:
            UnauthenticatedError: missing, malformed, forged or expired token,
                or the identity no longer exists
        """
        if not access_token:
            raise UnauthenticatedError()

        try:
            payload = self.jwt_manager.verify_access_token(access_token)
        except TokenError as e:
            # The cause stays in the logs; callers see one kind
            logger.debug("Access token rejected", extra={"reason": type(e).__name__})
            raise UnauthenticatedError() from e

        user = await self.credentials.find_by_id(payload.user_id)
        if user is None:
            logger.debug("Access token for a missing identity", extra={"user_id": str(payload.user_id)})
            raise UnauthenticatedError()
        return user

    @staticmethod
    def authorize_admin(user: User) -> None:
        """
        Raises:
            ForbiddenError: authenticated, but not an admin
        """
        if not user.is_admin:
            raise ForbiddenError()

"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

import ipaddress
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import get_db
from authcore.logging_config import get_logger
from authcore.kernel.identity.gate import AuthenticationGate
from authcore.kernel.identity.identity_service import IdentityService
from authcore.kernel.models.user import User
from authcore.notifications.email import Mailer, get_mailer

logger = get_logger(__name__)

# Width of the ip_address columns
MAX_IP_LENGTH = 45


# Security scheme
security = HTTPBearer(auto_error=False)


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_identity_service(db: DbSession) -> IdentityService:
    return IdentityService(db)


Identity = Annotated[IdentityService, Depends(get_identity_service)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    identity_service: Identity,
) -> User:
    """Get current authenticated user or raise 401."""
    token = credentials.credentials if credentials else None
    return await identity_service.authenticate(token)


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(user: CurrentUser) -> User:
    """Require the current user to be an admin."""
    AuthenticationGate.authorize_admin(user)
    return user


AdminUser = Annotated[User, Depends(require_admin)]


def get_client_ip(request: Request) -> Optional[str]:
    """
    Extract client IP from request.

    The first X-Forwarded-For hop is used only when it parses as an
    address; anything else falls back to the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        try:
            address = str(ipaddress.ip_address(candidate))
        except ValueError:
            address = None
        if address and len(address) <= MAX_IP_LENGTH:
            return address
        logger.debug("Ignoring malformed X-Forwarded-For", extra={"length": len(candidate)})
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")

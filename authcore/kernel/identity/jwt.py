"""
JWT access token management.

Only access tokens are signed. They are never stored and cannot be revoked
before ``exp``; the short TTL is the only mitigation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError
from pydantic import BaseModel

from authcore.config import Settings, get_settings
from authcore.kernel.models.base import utcnow

ACCESS_TOKEN_TYPE = "access"


class TokenError(Exception):
    """Base class for access token verification failures."""


class TokenMalformedError(TokenError):
    """Not a JWT, or missing the claims an access token must carry."""


class TokenSignatureError(TokenError):
    """Signature does not match the server secret."""


class TokenExpiredError(TokenError):
    """Signature is valid but ``exp`` has passed."""


class AccessTokenPayload(BaseModel):
    """JWT access token payload."""

    sub: str  # User ID
    role: str
    exp: datetime
    iat: datetime
    jti: str

    @property
    def user_id(self) -> uuid.UUID:
        return uuid.UUID(self.sub)


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Seconds until access token expires


class JWTManager:
    """
    Access token creation and verification.

    The secret is handed in at construction and never re-read; rotating it
    means building a new manager (in practice, a redeploy).
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 15,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "JWTManager":
        return cls(
            secret_key=settings.secret_key,
            algorithm=settings.algorithm,
            access_token_expire_minutes=settings.access_token_expire_minutes,
        )

    def create_access_token(
        self,
        user_id: uuid.UUID,
        role: str,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime, str]:
        """
        Create a new access token.

        Args:
            user_id: User's unique identifier
            role: User's role at issuance (informational; the gate re-reads it)
            expires_delta: Optional custom expiration time

        Returns:
            Tuple of (token, expiration_datetime, token_id)
        """
        # JWT times are whole seconds; keep the returned expiry identical to the encoded one
        now = self.clock().replace(microsecond=0)
        expire = now + (expires_delta or timedelta(minutes=self.access_token_expire_minutes))
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(user_id),
            "role": role,
            "exp": int(expire.timestamp()),
            "iat": int(now.timestamp()),
            "jti": jti,
            "type": ACCESS_TOKEN_TYPE,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return token, expire, jti

    def verify_access_token(self, token: str, now: Optional[datetime] = None) -> AccessTokenPayload:
        """
        Verify and decode an access token.

        The token is valid up to and including its ``exp`` instant.

        Raises:
            TokenMalformedError: not a JWT or not an access token
            TokenSignatureError: signed with another secret or tampered with
            TokenExpiredError: signature valid, ``exp`` in the past
        """
        try:
            jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformedError(str(e)) from e

        try:
            # Expiry is checked below against our own clock
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTClaimsError as e:
            raise TokenMalformedError(str(e)) from e
        except JWTError as e:
            raise TokenSignatureError(str(e)) from e

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise TokenMalformedError("not an access token")

        try:
            claims = AccessTokenPayload(
                sub=payload["sub"],
                role=payload["role"],
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                jti=payload["jti"],
            )
            uuid.UUID(claims.sub)
        except (KeyError, TypeError, ValueError) as e:
            raise TokenMalformedError("missing or invalid claims") from e

        if (now or self.clock()) > claims.exp:
            raise TokenExpiredError("token expired")

        return claims


# Default manager instance
_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create the process-wide manager from settings."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager.from_settings(get_settings())
    return _jwt_manager

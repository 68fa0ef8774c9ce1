"""
User model for identity management.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from authcore.kernel.models.base import Base, TimestampMixin, UTCDateTime, generate_uuid, utcnow


class UserRole(str, Enum):
    """User roles in the system."""
    USER = "user"
    ADMIN = "admin"


class ProofPurpose(str, Enum):
    """Out-of-band identity proofs carried on the user record."""
    VERIFICATION = "verification"
    RESET = "reset"


@dataclass(frozen=True)
class ProofToken:
    """An opaque one-time value and the instant it stops being redeemable."""

    value: str
    expires_at: datetime


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    picture: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        String(50),
        default=UserRole.USER,
        nullable=False,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # One active token per purpose; value and expiry always move together
    verification_token: Mapped[Optional[str]] = mapped_column(
        String(128),
        index=True,
        nullable=True,
    )
    verification_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    reset_token: Mapped[Optional[str]] = mapped_column(
        String(128),
        index=True,
        nullable=True,
    )
    reset_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    last_login_ip: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    @validates("password_hash")
    def _validate_password_hash(self, key: str, value: str) -> str:
        # Plaintext must never land in this column
        if not value or not value.startswith("$2"):
            raise ValueError("password_hash must be a bcrypt hash")
        return value

    @property
    def role_value(self) -> str:
        # role may be enum or str when loaded from SQLite
        return self.role.value if hasattr(self.role, "value") else self.role

    @property
    def is_admin(self) -> bool:
        return self.role_value == UserRole.ADMIN.value

    def get_proof(self, purpose: ProofPurpose) -> Optional[ProofToken]:
        """Return the active token for ``purpose``, if one is set."""
        if purpose is ProofPurpose.VERIFICATION:
            value, expires_at = self.verification_token, self.verification_token_expires_at
        else:
            value, expires_at = self.reset_token, self.reset_token_expires_at
        if value is None or expires_at is None:
            return None
        return ProofToken(value=value, expires_at=expires_at)

    def set_proof(self, purpose: ProofPurpose, token: ProofToken) -> None:
        """Overwrite the token for ``purpose``; any previous value stops working."""
        if purpose is ProofPurpose.VERIFICATION:
            self.verification_token = token.value
            self.verification_token_expires_at = token.expires_at
        else:
            self.reset_token = token.value
            self.reset_token_expires_at = token.expires_at

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class RefreshSession(Base):
    """Server-side record backing one opaque refresh token."""

    __tablename__ = "refresh_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # SHA-256 of the opaque value; the value itself is only ever held by the client
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    user_agent: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

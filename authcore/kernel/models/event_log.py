"""
Append-only audit log of identity lifecycle events.

Rows are never updated or deleted, and they outlive the identity they
describe (no foreign key to users). Payloads must not carry passwords,
hashes or token values.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from authcore.kernel.models.base import Base, UTCDateTime, generate_uuid, utcnow


class EventType(str, Enum):
    """All event types for the audit log."""

    USER_REGISTERED = "user.registered"
    USER_LOGGED_IN = "user.logged_in"
    USER_LOGIN_FAILED = "user.login_failed"
    USER_LOGGED_OUT = "user.logged_out"
    USER_UPDATED = "user.updated"
    USER_ROLE_CHANGED = "user.role_changed"
    USER_DELETED = "user.deleted"

    SESSION_RENEWED = "session.renewed"

    EMAIL_VERIFICATION_REQUESTED = "proof.verification_requested"
    EMAIL_VERIFIED = "proof.email_verified"
    PASSWORD_RESET_REQUESTED = "proof.reset_requested"
    PASSWORD_RESET_COMPLETED = "proof.reset_completed"
    PASSWORD_CHANGED = "user.password_changed"


class EventLog(Base):
    """Immutable audit event."""

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    # Actor; admin operations record the admin here, not the target
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    user_agent: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        event_type = self.event_type.value if hasattr(self.event_type, "value") else self.event_type
        return f"<EventLog {event_type} {self.entity_type}:{self.entity_id}>"

"""
Kernel Data Models

SQLAlchemy models for identities, refresh sessions and the audit log.
"""

from authcore.kernel.models.base import Base, TimestampMixin, UTCDateTime, generate_uuid, utcnow
from authcore.kernel.models.user import (
    User,
    UserRole,
    RefreshSession,
    ProofPurpose,
    ProofToken,
)
from authcore.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "generate_uuid",
    "utcnow",
    # User
    "User",
    "UserRole",
    "RefreshSession",
    "ProofPurpose",
    "ProofToken",
    # Event Log
    "EventLog",
    "EventType",
]

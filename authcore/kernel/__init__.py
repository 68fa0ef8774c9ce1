"""
Identity Kernel

- Credential Store (identities, password hashes)
- Session Registry (single-use refresh sessions)
- Identity Proofs (email verification, password reset)
- Authentication Gate (access token -> current identity)
- Event Log (append-only audit trail)
"""

from authcore.kernel.models import (
    User,
    UserRole,
    RefreshSession,
    EventLog,
    EventType,
)

__all__ = [
    "User",
    "UserRole",
    "RefreshSession",
    "EventLog",
    "EventType",
]

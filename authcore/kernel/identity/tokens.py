"""
Opaque one-time token generation.

Refresh, verification and reset tokens are all random values persisted
server-side; none of them are signed with the access-token secret.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional

from authcore.kernel.models.base import utcnow
from authcore.kernel.models.user import ProofToken

# 32 bytes -> 64 hex characters
TOKEN_BYTES = 32


def generate_opaque_token(nbytes: int = TOKEN_BYTES) -> str:
    """Return a cryptographically random hex token."""
    return secrets.token_hex(nbytes)


def issue_token(ttl: timedelta, now: Optional[datetime] = None) -> ProofToken:
    """Generate a token that stops being redeemable ``ttl`` from ``now``."""
    issued_at = now or utcnow()
    return ProofToken(value=generate_opaque_token(), expires_at=issued_at + ttl)


def hash_token(token: str) -> str:
    """SHA-256 of a token, used as the stored lookup key for refresh sessions."""
    return hashlib.sha256(token.encode()).hexdigest()

"""
Password hashing utilities using bcrypt.
"""

import secrets
from typing import Optional

import bcrypt

from authcore.config import get_settings


class PasswordHasher:
    """
    Salted, slow, one-way password hashing.

    The work factor is fixed per instance; hashes produced with another
    factor still verify, and ``needs_rehash`` reports them.
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds or get_settings().bcrypt_rounds
        self._dummy_hash: Optional[str] = None

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """
        Truncate password to 72 bytes (bcrypt limit) and encode.

        bcrypt only uses the first 72 bytes of a password; newer releases
        raise instead of truncating silently.
        """
        return password.encode("utf-8")[:72]

    def hash(self, password: str) -> str:
        """Hash a password with a fresh salt."""
        pwd_bytes = self._truncate_password(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pwd_bytes, salt).decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns False for a corrupt or foreign-format stored hash rather
        than raising.
        """
        try:
            return bcrypt.checkpw(
                self._truncate_password(plain_password),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            return False

    def verify_against_dummy(self, plain_password: str) -> None:
        """Run a full comparison whose result is discarded (timing equaliser)."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_hex(16))
        self.verify(plain_password, self._dummy_hash)

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash was produced with a different work factor.

        Format: $2b$XX$... where XX is the rounds.
        """
        parts = hashed_password.split("$")
        if len(parts) < 3 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self.rounds


_hasher: Optional[PasswordHasher] = None


def get_password_hasher() -> PasswordHasher:
    """Get or create the default hasher (work factor from settings)."""
    global _hasher
    if _hasher is None:
        _hasher = PasswordHasher()
    return _hasher


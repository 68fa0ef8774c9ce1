"""
Credential store: persisted identities and their password hashes.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.errors import DuplicateEmailError
from authcore.kernel.identity.password import PasswordHasher, get_password_hasher
from authcore.kernel.models.base import utcnow
from authcore.kernel.models.user import User, UserRole
from authcore.logging_config import get_logger

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class IdentityUpdate:
    """
    Sparse update: one optional slot per mutable attribute.

    There is deliberately no password slot; passwords only change through
    ``CredentialStore.mutate_password``.
    """

    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    picture: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.full_name, self.email, self.role, self.picture)
        )


class CredentialStore:
    """
    Create, look up and mutate identities.

    Every write that touches ``password_hash`` goes through
    ``create`` or ``mutate_password``, both of which hash synchronously
    before the flush.
    """

    def __init__(self, session: AsyncSession, hasher: Optional[PasswordHasher] = None):
        self.session = session
        self.hasher = hasher or get_password_hasher()

    async def create(
        self,
        email: str,
        full_name: str,
        password: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """
        Create a new, unverified identity.

        Raises:
            DuplicateEmailError: If the normalised email is already taken
        """
        email = normalize_email(email)
        if await self.find_by_email(email):
            raise DuplicateEmailError()

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            full_name=full_name.strip(),
            role=role.value,
            is_verified=False,
        )
        try:
            # Savepoint so a concurrent insert of the same email leaves the session usable
            async with self.session.begin_nested():
                self.session.add(user)
                await self.session.flush()
        except IntegrityError:
            logger.info("Duplicate email on insert", extra={"reason": "unique_violation"})
            raise DuplicateEmailError()
        return user

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        query = select(User).where(User.id == user_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        query = select(User).where(User.email == normalize_email(email))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def reload(self, user_id: uuid.UUID) -> Optional[User]:
        """Re-read an identity, discarding any state cached in the session."""
        query = select(User).where(User.id == user_id).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    def verify_password(self, user: User, password: str) -> bool:
        return self.hasher.verify(password, user.password_hash)

    def burn_password_check(self, password: str) -> None:
        """Spend one hash comparison so unknown emails take as long as wrong passwords."""
        self.hasher.verify_against_dummy(password)

    async def mutate_password(self, user: User, new_password: str) -> None:
        """Replace the stored hash; persisted before this returns."""
        user.password_hash = self.hasher.hash(new_password)
        await self.session.flush()

    async def apply_update(self, user: User, update: IdentityUpdate) -> dict:
        """
        Apply the non-empty slots of ``update`` field by field.

        Every check runs before the first assignment, so a rejected update
        leaves ``user`` untouched.

        Returns:
            The changed fields and their new values

        Raises:
            DuplicateEmailError: If the new email belongs to another identity
        """
        changes: dict = {}

        if update.email is not None:
            new_email = normalize_email(update.email)
            if new_email != user.email:
                existing = await self.find_by_email(new_email)
                if existing and existing.id != user.id:
                    raise DuplicateEmailError("Email already in use")
                changes["email"] = new_email

        if update.full_name is not None:
            changes["full_name"] = update.full_name.strip()

        if update.role is not None and update.role.value != user.role_value:
            changes["previous_role"] = user.role_value
            changes["role"] = update.role.value

        if update.picture is not None:
            changes["picture"] = update.picture

        if not changes:
            return changes

        for field in ("email", "full_name", "role", "picture"):
            if field in changes:
                setattr(user, field, changes[field])

        try:
            async with self.session.begin_nested():
                await self.session.flush()
        except IntegrityError:
            # Lost a race for the address; put the row back as stored
            await self.session.refresh(user)
            raise DuplicateEmailError("Email already in use")
        return changes

    async def record_login(
        self,
        user: User,
        ip_address: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> None:
        user.last_login_at = at or utcnow()
        user.last_login_ip = ip_address
        await self.session.flush()

    async def delete(self, user: User) -> None:
        await self.session.delete(user)
        await self.session.flush()

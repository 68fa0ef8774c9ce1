"""
Identity service: the operations exposed to the HTTP layer.

Orchestrates the credential store, session registry, proof state and
signer. Methods flush but never commit; the request scope decides.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import Settings, get_settings
from authcore.errors import (
    AlreadyVerifiedError,
    InvalidCredentialsError,
    InvalidOrExpiredSessionError,
    NotFoundError,
    NotVerifiedError,
    ValidationError,
)
from authcore.kernel.events.event_store import EventStore
from authcore.kernel.identity.credential_store import CredentialStore, IdentityUpdate
from authcore.kernel.identity.gate import AuthenticationGate
from authcore.kernel.identity.jwt import JWTManager, TokenPair, get_jwt_manager
from authcore.kernel.identity.password import PasswordHasher
from authcore.kernel.identity.proofs import IdentityProofs
from authcore.kernel.identity.session_registry import OpenedSession, SessionRegistry
from authcore.kernel.models.event_log import EventType
from authcore.kernel.models.user import ProofPurpose, User
from authcore.logging_config import get_logger
from authcore.notifications.email import EmailMessage
from authcore.notifications.templates import (
    build_link,
    render_password_reset_email,
    render_verification_email,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenPair


@dataclass(frozen=True)
class ProofIssued:
    """A freshly issued one-time token and the email that delivers it."""

    token: str
    expires_at: datetime
    notice: EmailMessage


class IdentityService:
    """
    Service for user identity operations.

    Handles registration, login, session renewal, identity proofs and
    account management.
    """

    def __init__(
        self,
        session: AsyncSession,
        jwt_manager: Optional[JWTManager] = None,
        settings: Optional[Settings] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.jwt_manager = jwt_manager or get_jwt_manager()
        self.credentials = CredentialStore(session, hasher)
        self.sessions = SessionRegistry(
            session,
            ttl=timedelta(days=self.settings.refresh_token_expire_days),
        )
        self.proofs = IdentityProofs(
            session,
            self.credentials,
            verification_ttl=timedelta(minutes=self.settings.verification_token_expire_minutes),
            reset_ttl=timedelta(minutes=self.settings.reset_token_expire_minutes),
        )
        self.gate = AuthenticationGate(session, self.jwt_manager, self.credentials)
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    async def register(
        self,
        full_name: str,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
    ) -> User:
        """
        Register a new, unverified user and issue its verification token.

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        user = await self.credentials.create(email=email, full_name=full_name, password=password)
        await self.proofs.issue_verification(user)

        await self.event_store.log(
            event_type=EventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"role": user.role_value},
            ip_address=ip_address,
        )
        logger.info("User registered", extra={"user_id": str(user.id)})
        return user

    def verification_notice(self, user: User) -> EmailMessage:
        """Email carrying the user's currently active verification token."""
        proof = user.get_proof(ProofPurpose.VERIFICATION)
        if proof is None:
            raise ValueError("user has no active verification token")
        return EmailMessage(
            to=user.email,
            subject="Verify Your Email",
            html=render_verification_email(
                user.full_name,
                build_link(self.settings.frontend_url, "/verify-email", proof.value),
                self.settings.verification_token_expire_minutes,
            ),
        )

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """
        Check credentials and open a new session.

        Raises:
            InvalidCredentialsError: unknown email or wrong password (indistinguishable)
            NotVerifiedError: credentials correct but email not verified
        """
        user = await self.credentials.find_by_email(email)
        if user is None:
            self.credentials.burn_password_check(password)
            raise InvalidCredentialsError()

        if not self.credentials.verify_password(user, password):
            await self.event_store.log(
                event_type=EventType.USER_LOGIN_FAILED,
                entity_type="user",
                entity_id=user.id,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidCredentialsError()

        if not user.is_verified:
            raise NotVerifiedError()

        if self.credentials.hasher.needs_rehash(user.password_hash):
            await self.credentials.mutate_password(user, password)

        await self.credentials.record_login(user, ip_address)
        opened = await self.sessions.open(user.id, ip_address=ip_address, user_agent=user_agent)
        tokens = self._token_pair(user, opened)

        await self.event_store.log(
            event_type=EventType.USER_LOGGED_IN,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"method": "password"},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return LoginResult(user=user, tokens=tokens)

    async def renew_access_token(
        self,
        refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """
        Exchange a refresh token for a new access token and a new refresh token.

        The presented refresh token is consumed (rotation).

        Raises:
            InvalidOrExpiredSessionError: unknown, already used or expired refresh token
        """
        user_id = await self.sessions.redeem(refresh_token)
        user = await self.credentials.find_by_id(user_id)
        if user is None:
            raise InvalidOrExpiredSessionError()

        opened = await self.sessions.open(user.id, ip_address=ip_address, user_agent=user_agent)
        await self.event_store.log(
            event_type=EventType.SESSION_RENEWED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            ip_address=ip_address,
        )
        return self._token_pair(user, opened)

    async def logout(self, refresh_token: Optional[str], ip_address: Optional[str] = None) -> None:
        """End the session behind ``refresh_token``. Idempotent."""
        if not refresh_token:
            return
        user_id = await self.sessions.close(refresh_token)
        if user_id is not None:
            await self.event_store.log(
                event_type=EventType.USER_LOGGED_OUT,
                entity_type="user",
                entity_id=user_id,
                user_id=user_id,
                ip_address=ip_address,
            )

    # ------------------------------------------------------------------
    # Identity proofs
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str, ip_address: Optional[str] = None) -> ProofIssued:
        """
        Issue a reset token, replacing any earlier one.

        Raises:
            NotFoundError: no identity with this email
        """
        user = await self.credentials.find_by_email(email)
        if user is None:
            raise NotFoundError("No user found with this email")

        proof = await self.proofs.issue_reset(user)
        await self.event_store.log(
            event_type=EventType.PASSWORD_RESET_REQUESTED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            ip_address=ip_address,
        )
        notice = EmailMessage(
            to=user.email,
            subject="Reset Your Password",
            html=render_password_reset_email(
                user.full_name,
                build_link(self.settings.frontend_url, "/reset-password", proof.value),
                self.settings.reset_token_expire_minutes,
            ),
        )
        return ProofIssued(token=proof.value, expires_at=proof.expires_at, notice=notice)

    async def complete_password_reset(
        self,
        token: str,
        new_password: str,
        ip_address: Optional[str] = None,
    ) -> User:
        """
        Set a new password using a reset token. All sessions are closed.

        Raises:
            InvalidOrExpiredTokenError: token unknown, used, superseded or expired
        """
        user = await self.proofs.redeem_reset(token, new_password)
        closed = await self.sessions.close_all(user.id)
        await self.event_store.log(
            event_type=EventType.PASSWORD_RESET_COMPLETED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"sessions_closed": closed},
            ip_address=ip_address,
        )
        return user

    async def request_email_verification(self, email: str, ip_address: Optional[str] = None) -> ProofIssued:
        """
        Issue a new verification token, replacing any earlier one.

        Raises:
            NotFoundError: no identity with this email
            AlreadyVerifiedError: nothing left to verify
        """
        user = await self.credentials.find_by_email(email)
        if user is None:
            raise NotFoundError()
        if user.is_verified:
            raise AlreadyVerifiedError()

        proof = await self.proofs.issue_verification(user)
        await self.event_store.log(
            event_type=EventType.EMAIL_VERIFICATION_REQUESTED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            ip_address=ip_address,
        )
        return ProofIssued(
            token=proof.value,
            expires_at=proof.expires_at,
            notice=self.verification_notice(user),
        )

    async def complete_email_verification(self, token: str, ip_address: Optional[str] = None) -> User:
        """
        Raises:
            InvalidOrExpiredTokenError: token unknown, used, superseded or expired
        """
        user = await self.proofs.redeem_verification(token)
        await self.event_store.log(
            event_type=EventType.EMAIL_VERIFIED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            ip_address=ip_address,
        )
        return user

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    async def authenticate(self, access_token: Optional[str]) -> User:
        return await self.gate.authenticate(access_token)

    def authorize_admin(self, user: User) -> None:
        self.gate.authorize_admin(user)

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Change password after re-checking the current one. All sessions are closed.

        Raises:
            ValidationError: current password wrong, or new equals current
        """
        if not self.credentials.verify_password(user, current_password):
            raise ValidationError("Your current password is incorrect", field="current_password")
        if current_password == new_password:
            raise ValidationError(
                "New password must be different from the old password",
                field="new_password",
            )

        await self.credentials.mutate_password(user, new_password)
        closed = await self.sessions.close_all(user.id)
        await self.event_store.log(
            event_type=EventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"sessions_closed": closed},
            ip_address=ip_address,
        )

    async def update_profile(
        self,
        user: User,
        update: IdentityUpdate,
        ip_address: Optional[str] = None,
    ) -> User:
        """
        Self-service update of name, email and picture. Role is never taken from here.

        Raises:
            ValidationError: nothing to update
            DuplicateEmailError: new email already in use
        """
        update = replace(update, role=None)
        if update.is_empty():
            raise ValidationError("Please provide name or email to update")

        changes = await self.credentials.apply_update(user, update)
        if changes:
            await self.event_store.log(
                event_type=EventType.USER_UPDATED,
                entity_type="user",
                entity_id=user.id,
                user_id=user.id,
                payload=changes,
                ip_address=ip_address,
            )
        return user

    async def delete_account(
        self,
        user: User,
        actor: Optional[User] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """Delete the identity and every refresh session it owns."""
        user_id = user.id
        closed = await self.sessions.close_all(user_id)
        await self.credentials.delete(user)
        await self.event_store.log(
            event_type=EventType.USER_DELETED,
            entity_type="user",
            entity_id=user_id,
            user_id=actor.id if actor else user_id,
            payload={"sessions_closed": closed},
            ip_address=ip_address,
        )

    async def get_user(self, user_id: uuid.UUID) -> User:
        """
        Raises:
            NotFoundError: no identity with this id
        """
        user = await self.credentials.find_by_id(user_id)
        if user is None:
            raise NotFoundError()
        return user

    async def admin_update_user(
        self,
        admin: User,
        user_id: uuid.UUID,
        update: IdentityUpdate,
        ip_address: Optional[str] = None,
    ) -> User:
        """
        Admin update of name, email and role.

        Raises:
            NotFoundError: no identity with this id
            ValidationError: nothing to update
            DuplicateEmailError: new email already in use
        """
        self.authorize_admin(admin)
        user = await self.get_user(user_id)
        if update.is_empty():
            raise ValidationError("Please provide name, email or role to update")

        changes = await self.credentials.apply_update(user, update)
        if "role" in changes:
            await self.event_store.log(
                event_type=EventType.USER_ROLE_CHANGED,
                entity_type="user",
                entity_id=user.id,
                user_id=admin.id,
                payload={"previous_role": changes["previous_role"], "new_role": changes["role"]},
                ip_address=ip_address,
            )
        if changes:
            await self.event_store.log(
                event_type=EventType.USER_UPDATED,
                entity_type="user",
                entity_id=user.id,
                user_id=admin.id,
                payload=changes,
                ip_address=ip_address,
            )
        return user

    async def admin_delete_user(
        self,
        admin: User,
        user_id: uuid.UUID,
        ip_address: Optional[str] = None,
    ) -> None:
        self.authorize_admin(admin)
        user = await self.get_user(user_id)
        await self.delete_account(user, actor=admin, ip_address=ip_address)

    def _token_pair(self, user: User, opened: OpenedSession) -> TokenPair:
        access_token, access_exp, _ = self.jwt_manager.create_access_token(
            user_id=user.id,
            role=user.role_value,
        )
        expires_in = max(0, int((access_exp - self.jwt_manager.clock()).total_seconds()))
        return TokenPair(
            access_token=access_token,
            refresh_token=opened.token,
            expires_in=expires_in,
        )

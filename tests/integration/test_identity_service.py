"""Scenario tests for the identity service boundary."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from authcore.errors import (
    AlreadyVerifiedError,
    DuplicateEmailError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidOrExpiredSessionError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    NotVerifiedError,
    UnauthenticatedError,
    ValidationError,
)
from authcore.kernel.events.event_store import EventStore
from authcore.kernel.identity.credential_store import IdentityUpdate
from authcore.kernel.identity.identity_service import IdentityService
from authcore.kernel.identity.jwt import JWTManager, get_jwt_manager
from authcore.kernel.models import EventLog, EventType, ProofPurpose, RefreshSession, UserRole, utcnow


async def register_alice(session_maker, verify: bool = False):
    async with session_maker() as session:
        service = IdentityService(session)
        user = await service.register("Alice", "a@x.com", "Password123")
        token = user.get_proof(ProofPurpose.VERIFICATION).value
        if verify:
            await service.complete_email_verification(token)
        await session.commit()
    return user, token


async def login(session_maker, email="a@x.com", password="Password123"):
    async with session_maker() as session:
        result = await IdentityService(session).login(email, password, ip_address="192.0.2.10")
        await session.commit()
    return result


class TestRegistration:
    @pytest.mark.asyncio
    async def test_password_is_hashed(self, session_maker):
        user, _ = await register_alice(session_maker)

        assert user.password_hash != "Password123"
        async with session_maker() as session:
            service = IdentityService(session)
            assert service.credentials.verify_password(user, "Password123")

    @pytest.mark.asyncio
    async def test_registers_unverified_with_verification_token(self, session_maker):
        user, token = await register_alice(session_maker)

        assert user.is_verified is False
        assert len(token) == 64
        assert user.get_proof(ProofPurpose.VERIFICATION).expires_at > utcnow()

    @pytest.mark.asyncio
    async def test_duplicate_email_any_case(self, session_maker):
        await register_alice(session_maker)

        async with session_maker() as session:
            with pytest.raises(DuplicateEmailError):
                await IdentityService(session).register("Other", "A@X.com", "Password123")

    @pytest.mark.asyncio
    async def test_verification_notice_carries_link(self, session_maker):
        async with session_maker() as session:
            service = IdentityService(session)
            user = await service.register("Alice", "a@x.com", "Password123")
            notice = service.verification_notice(user)

        token = user.get_proof(ProofPurpose.VERIFICATION).value
        assert notice.to == "a@x.com"
        assert f"http://frontend.test/verify-email?token={token}" in notice.html


class TestLogin:
    @pytest.mark.asyncio
    async def test_alice_scenario(self, session_maker):
        _, token = await register_alice(session_maker)

        with pytest.raises(NotVerifiedError):
            await login(session_maker)

        async with session_maker() as session:
            verified = await IdentityService(session).complete_email_verification(token)
            await session.commit()
        assert verified.is_verified is True

        result = await login(session_maker)
        assert result.tokens.access_token
        assert result.tokens.refresh_token
        assert result.tokens.token_type == "bearer"
        assert 0 < result.tokens.expires_in <= 15 * 60
        assert result.user.email == "a@x.com"

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_look_the_same(self, session_maker):
        await register_alice(session_maker, verify=True)

        with pytest.raises(InvalidCredentialsError) as unknown:
            await login(session_maker, email="nobody@x.com")
        with pytest.raises(InvalidCredentialsError) as wrong:
            await login(session_maker, password="Password124")

        assert unknown.value.to_dict() == wrong.value.to_dict()

    @pytest.mark.asyncio
    async def test_wrong_password_checked_before_verification(self, session_maker):
        await register_alice(session_maker)

        with pytest.raises(InvalidCredentialsError):
            await login(session_maker, password="Password124")

    @pytest.mark.asyncio
    async def test_failed_login_is_audited(self, session_maker):
        user, _ = await register_alice(session_maker, verify=True)

        async with session_maker() as session:
            with pytest.raises(InvalidCredentialsError):
                await IdentityService(session).login("a@x.com", "Password124")
            await session.commit()

        async with session_maker() as session:
            count = await EventStore(session).count_events(user.id, EventType.USER_LOGIN_FAILED)
        assert count == 1

    @pytest.mark.asyncio
    async def test_login_records_origin_and_opens_independent_sessions(self, session_maker):
        user, _ = await register_alice(session_maker, verify=True)

        first = await login(session_maker)
        second = await login(session_maker)

        assert first.tokens.refresh_token != second.tokens.refresh_token
        assert second.user.last_login_ip == "192.0.2.10"
        async with session_maker() as session:
            assert await IdentityService(session).sessions.count_active(user.id) == 2


class TestRefreshSessions:
    @pytest.mark.asyncio
    async def test_rotate_on_use(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            renewed = await IdentityService(session).renew_access_token(result.tokens.refresh_token)
            await session.commit()
        assert renewed.refresh_token != result.tokens.refresh_token

        async with session_maker() as session:
            with pytest.raises(InvalidOrExpiredSessionError):
                await IdentityService(session).renew_access_token(result.tokens.refresh_token)

        async with session_maker() as session:
            again = await IdentityService(session).renew_access_token(renewed.refresh_token)
            await session.commit()
        assert again.access_token

    @pytest.mark.asyncio
    async def test_renew_after_session_expiry(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            await session.execute(
                update(RefreshSession).values(expires_at=utcnow() - timedelta(seconds=1))
            )
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(InvalidOrExpiredSessionError):
                await IdentityService(session).renew_access_token(result.tokens.refresh_token)
            await session.commit()

        async with session_maker() as session:
            assert (await session.execute(select(RefreshSession))).first() is None

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            service = IdentityService(session)
            await service.logout(result.tokens.refresh_token)
            await service.logout(result.tokens.refresh_token)
            await service.logout("never-issued")
            await service.logout(None)
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(InvalidOrExpiredSessionError):
                await IdentityService(session).renew_access_token(result.tokens.refresh_token)


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_reset_scenario(self, session_maker):
        await register_alice(session_maker, verify=True)
        before = await login(session_maker)

        async with session_maker() as session:
            issued = await IdentityService(session).request_password_reset("a@x.com")
            await session.commit()
        assert issued.token in issued.notice.html
        assert issued.notice.subject == "Reset Your Password"

        async with session_maker() as session:
            await IdentityService(session).complete_password_reset(issued.token, "NewPass1")
            await session.commit()

        with pytest.raises(InvalidCredentialsError):
            await login(session_maker)
        assert (await login(session_maker, password="NewPass1")).tokens.access_token

        # Sessions opened before the reset are gone
        async with session_maker() as session:
            with pytest.raises(InvalidOrExpiredSessionError):
                await IdentityService(session).renew_access_token(before.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_reset_token_single_use(self, session_maker):
        await register_alice(session_maker, verify=True)
        async with session_maker() as session:
            issued = await IdentityService(session).request_password_reset("a@x.com")
            await session.commit()

        async with session_maker() as session:
            service = IdentityService(session)
            await service.complete_password_reset(issued.token, "NewPass1")
            with pytest.raises(InvalidOrExpiredTokenError):
                await service.complete_password_reset(issued.token, "NewPass2")

    @pytest.mark.asyncio
    async def test_new_reset_supersedes_old(self, session_maker):
        await register_alice(session_maker, verify=True)
        async with session_maker() as session:
            service = IdentityService(session)
            first = await service.request_password_reset("a@x.com")
            second = await service.request_password_reset("a@x.com")

            with pytest.raises(InvalidOrExpiredTokenError):
                await service.complete_password_reset(first.token, "NewPass1")
            await service.complete_password_reset(second.token, "NewPass1")

    @pytest.mark.asyncio
    async def test_unknown_email(self, session_maker):
        async with session_maker() as session:
            with pytest.raises(NotFoundError):
                await IdentityService(session).request_password_reset("nobody@x.com")


class TestEmailVerification:
    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous(self, session_maker):
        _, original = await register_alice(session_maker)

        async with session_maker() as session:
            issued = await IdentityService(session).request_email_verification("a@x.com")
            await session.commit()
        assert issued.token != original

        async with session_maker() as session:
            service = IdentityService(session)
            with pytest.raises(InvalidOrExpiredTokenError):
                await service.complete_email_verification(original)
            user = await service.complete_email_verification(issued.token)
        assert user.is_verified

    @pytest.mark.asyncio
    async def test_already_verified(self, session_maker):
        await register_alice(session_maker, verify=True)

        async with session_maker() as session:
            with pytest.raises(AlreadyVerifiedError):
                await IdentityService(session).request_email_verification("a@x.com")

    @pytest.mark.asyncio
    async def test_unknown_email(self, session_maker):
        async with session_maker() as session:
            with pytest.raises(NotFoundError):
                await IdentityService(session).request_email_verification("nobody@x.com")


class TestGate:
    @pytest.mark.asyncio
    async def test_authenticate(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            user = await IdentityService(session).authenticate(result.tokens.access_token)
        assert user.id == result.user.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "garbage"])
    async def test_missing_or_malformed(self, session_maker, token):
        async with session_maker() as session:
            with pytest.raises(UnauthenticatedError):
                await IdentityService(session).authenticate(token)

    @pytest.mark.asyncio
    async def test_expired_and_forged_collapse_to_one_kind(self, session_maker):
        user, _ = await register_alice(session_maker, verify=True)
        past = datetime(2020, 1, 1, tzinfo=timezone.utc)
        stale = JWTManager(
            secret_key=get_jwt_manager().secret_key,
            clock=lambda: past,
        ).create_access_token(user.id, "user")[0]
        forged = JWTManager(secret_key="not-the-server-secret").create_access_token(user.id, "admin")[0]

        async with session_maker() as session:
            service = IdentityService(session)
            with pytest.raises(UnauthenticatedError) as expired_exc:
                await service.authenticate(stale)
            with pytest.raises(UnauthenticatedError) as forged_exc:
                await service.authenticate(forged)
        assert expired_exc.value.to_dict() == forged_exc.value.to_dict()

    @pytest.mark.asyncio
    async def test_deleted_identity(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            service = IdentityService(session)
            await service.delete_account(await service.get_user(result.user.id))
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(UnauthenticatedError):
                await IdentityService(session).authenticate(result.tokens.access_token)

    @pytest.mark.asyncio
    async def test_role_comes_from_store_not_token(self, session_maker, make_user):
        admin = await make_user(email="admin@x.com", role=UserRole.ADMIN)
        token, _, _ = get_jwt_manager().create_access_token(admin.id, "user")

        async with session_maker() as session:
            service = IdentityService(session)
            user = await service.authenticate(token)
            service.authorize_admin(user)

    @pytest.mark.asyncio
    async def test_authorize_admin_forbidden(self, session_maker):
        user, _ = await register_alice(session_maker, verify=True)

        async with session_maker() as session:
            with pytest.raises(ForbiddenError):
                IdentityService(session).authorize_admin(user)


class TestAccountManagement:
    @pytest.mark.asyncio
    async def test_change_password(self, session_maker):
        await register_alice(session_maker, verify=True)
        result = await login(session_maker)

        async with session_maker() as session:
            service = IdentityService(session)
            user = await service.get_user(result.user.id)
            with pytest.raises(ValidationError):
                await service.change_password(user, "WrongPass1", "NewPass12")
            with pytest.raises(ValidationError):
                await service.change_password(user, "Password123", "Password123")
            await service.change_password(user, "Password123", "NewPass12")
            await session.commit()

        assert (await login(session_maker, password="NewPass12")).tokens.access_token
        async with session_maker() as session:
            with pytest.raises(InvalidOrExpiredSessionError):
                await IdentityService(session).renew_access_token(result.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_update_profile_never_changes_role(self, session_maker):
        user, _ = await register_alice(session_maker, verify=True)

        async with session_maker() as session:
            service = IdentityService(session)
            loaded = await service.get_user(user.id)
            updated = await service.update_profile(
                loaded,
                IdentityUpdate(full_name="Alice Liddell", role=UserRole.ADMIN),
            )
            with pytest.raises(ValidationError):
                await service.update_profile(loaded, IdentityUpdate(role=UserRole.ADMIN))
            await session.commit()

        assert updated.full_name == "Alice Liddell"
        assert updated.role_value == "user"

    @pytest.mark.asyncio
    async def test_admin_update_and_delete(self, session_maker, make_user):
        admin = await make_user(email="admin@x.com", role=UserRole.ADMIN)
        target = await make_user(email="bob@x.com", full_name="Bob")

        async with session_maker() as session:
            service = IdentityService(session)
            updated = await service.admin_update_user(admin, target.id, IdentityUpdate(role=UserRole.ADMIN))
            await session.commit()
        assert updated.is_admin

        async with session_maker() as session:
            events = await EventStore(session).get_entity_history(
                "user", target.id, event_types=[EventType.USER_ROLE_CHANGED]
            )
        assert events[0].payload == {"previous_role": "user", "new_role": "admin"}
        assert events[0].user_id == admin.id

        async with session_maker() as session:
            service = IdentityService(session)
            await service.admin_delete_user(admin, target.id)
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(NotFoundError):
                await IdentityService(session).get_user(target.id)
            with pytest.raises(NotFoundError):
                await IdentityService(session).admin_delete_user(admin, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_admin_operations_require_admin(self, session_maker, make_user):
        user = await make_user(email="carol@x.com")
        other = await make_user(email="dave@x.com")

        async with session_maker() as session:
            service = IdentityService(session)
            with pytest.raises(ForbiddenError):
                await service.admin_update_user(user, other.id, IdentityUpdate(role=UserRole.ADMIN))
            with pytest.raises(ForbiddenError):
                await service.admin_delete_user(user, other.id)


@pytest.mark.asyncio
async def test_audit_payloads_never_carry_token_values(session_maker):
    _, verification = await register_alice(session_maker, verify=True)
    result = await login(session_maker)
    async with session_maker() as session:
        service = IdentityService(session)
        issued = await service.request_password_reset("a@x.com")
        await service.complete_password_reset(issued.token, "NewPass1")
        await session.commit()

    token_values = [verification, issued.token, result.tokens.refresh_token, result.tokens.access_token]
    async with session_maker() as session:
        events = (await session.execute(select(EventLog))).scalars().all()

    assert events
    for event in events:
        dumped = str(event.payload)
        assert not any(value in dumped for value in token_values)

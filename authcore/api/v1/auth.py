"""
Authentication endpoints.
"""

from fastapi import APIRouter, BackgroundTasks, Query, Request, status

from authcore.api.deps import Identity, MailerDep, get_client_ip, get_user_agent
from authcore.schemas.auth import (
    ForgotPasswordRequest,
    LoginResponse,
    LogoutRequest,
    RefreshTokenRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from authcore.schemas.common import SuccessResponse

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    data: UserCreate,
    identity_service: Identity,
    mailer: MailerDep,
    background_tasks: BackgroundTasks,
):
    """
    Register a new user account.

    The account starts unverified; a verification link is emailed and no
    tokens are issued until the address is confirmed and the user logs in.
    """
    user = await identity_service.register(
        full_name=data.full_name,
        email=data.email,
        password=data.password,
        ip_address=get_client_ip(request),
    )
    background_tasks.add_task(mailer.send, identity_service.verification_notice(user))
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    data: UserLogin,
    identity_service: Identity,
):
    """Authenticate user and return tokens."""
    result = await identity_service.login(
        email=data.email,
        password=data.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    tokens = result.tokens
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(result.user),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    data: RefreshTokenRequest,
    identity_service: Identity,
):
    """
    Refresh access token using refresh token.

    Implements refresh token rotation - the presented token is consumed.
    """
    tokens = await identity_service.renew_access_token(
        refresh_token=data.refresh_token,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return TokenResponse(**tokens.model_dump())


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    data: LogoutRequest,
    identity_service: Identity,
):
    """End the session behind the refresh token. Succeeds for unknown tokens too."""
    await identity_service.logout(data.refresh_token, ip_address=get_client_ip(request))
    return SuccessResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=SuccessResponse)
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    identity_service: Identity,
    mailer: MailerDep,
    background_tasks: BackgroundTasks,
):
    """Email a password reset link."""
    issued = await identity_service.request_password_reset(
        data.email,
        ip_address=get_client_ip(request),
    )
    background_tasks.add_task(mailer.send, issued.notice)
    return SuccessResponse(message="Password reset link sent to your email")


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    identity_service: Identity,
):
    """Set a new password using the emailed token. Signs out every session."""
    await identity_service.complete_password_reset(
        data.token,
        data.new_password,
        ip_address=get_client_ip(request),
    )
    return SuccessResponse(message="Password has been reset successfully")


@router.get("/verify-email", response_model=SuccessResponse)
async def verify_email(
    request: Request,
    identity_service: Identity,
    token: str = Query(..., min_length=1),
):
    """Confirm an email address using the emailed token."""
    await identity_service.complete_email_verification(token, ip_address=get_client_ip(request))
    return SuccessResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=SuccessResponse)
async def resend_verification(
    request: Request,
    data: ResendVerificationRequest,
    identity_service: Identity,
    mailer: MailerDep,
    background_tasks: BackgroundTasks,
):
    """Issue a fresh verification link; earlier links stop working."""
    issued = await identity_service.request_email_verification(
        data.email,
        ip_address=get_client_ip(request),
    )
    background_tasks.add_task(mailer.send, issued.notice)
    return SuccessResponse(message="Verification email resent successfully")

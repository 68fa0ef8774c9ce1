"""
Request and response schemas.
"""

from authcore.schemas.auth import (
    UserCreate,
    UserLogin,
    UserResponse,
    UserProfileUpdate,
    AdminUserUpdate,
    TokenResponse,
    LoginResponse,
    RefreshTokenRequest,
    LogoutRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    ResendVerificationRequest,
    ChangePasswordRequest,
)
from authcore.schemas.common import ErrorResponse, SuccessResponse, HealthResponse

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "UserProfileUpdate",
    "AdminUserUpdate",
    "TokenResponse",
    "LoginResponse",
    "RefreshTokenRequest",
    "LogoutRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ResendVerificationRequest",
    "ChangePasswordRequest",
    "ErrorResponse",
    "SuccessResponse",
    "HealthResponse",
]

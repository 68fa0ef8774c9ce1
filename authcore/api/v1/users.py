"""
User account endpoints: self-service and admin.
"""

import uuid

from fastapi import APIRouter, Request

from authcore.api.deps import AdminUser, CurrentUser, Identity, get_client_ip
from authcore.kernel.identity.credential_store import IdentityUpdate
from authcore.schemas.auth import (
    AdminUserUpdate,
    ChangePasswordRequest,
    UserProfileUpdate,
    UserResponse,
)
from authcore.schemas.common import SuccessResponse

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(user: CurrentUser):
    """Get current user's profile."""
    return UserResponse.model_validate(user)


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    request: Request,
    data: UserProfileUpdate,
    user: CurrentUser,
    identity_service: Identity,
):
    """Update current user's profile."""
    updated = await identity_service.update_profile(
        user,
        IdentityUpdate(full_name=data.full_name, email=data.email, picture=data.picture),
        ip_address=get_client_ip(request),
    )
    return UserResponse.model_validate(updated)


@router.delete("/me", response_model=SuccessResponse)
async def delete_account(
    request: Request,
    user: CurrentUser,
    identity_service: Identity,
):
    await identity_service.delete_account(user, ip_address=get_client_ip(request))
    return SuccessResponse(message="Account deleted successfully")


@router.post("/me/change-password", response_model=SuccessResponse)
async def change_password(
    request: Request,
    data: ChangePasswordRequest,
    user: CurrentUser,
    identity_service: Identity,
):
    """
    Change user's password.

    Closes all refresh sessions on success.
    """
    await identity_service.change_password(
        user,
        current_password=data.current_password,
        new_password=data.new_password,
        ip_address=get_client_ip(request),
    )
    return SuccessResponse(message="Password changed successfully. Please log in again.")


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    admin: AdminUser,
    identity_service: Identity,
):
    """Admin lookup of a single user."""
    return UserResponse.model_validate(await identity_service.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse)
async def admin_update_user(
    request: Request,
    user_id: uuid.UUID,
    data: AdminUserUpdate,
    admin: AdminUser,
    identity_service: Identity,
):
    updated = await identity_service.admin_update_user(
        admin,
        user_id,
        IdentityUpdate(full_name=data.full_name, email=data.email, role=data.role),
        ip_address=get_client_ip(request),
    )
    return UserResponse.model_validate(updated)


@router.delete("/{user_id}", response_model=SuccessResponse)
async def admin_delete_user(
    request: Request,
    user_id: uuid.UUID,
    admin: AdminUser,
    identity_service: Identity,
):
    await identity_service.admin_delete_user(admin, user_id, ip_address=get_client_ip(request))
    return SuccessResponse(message="User deleted successfully")

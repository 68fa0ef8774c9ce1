"""Unit tests for request body validation."""

import pytest
from pydantic import ValidationError

from authcore.schemas.auth import (
    AdminUserUpdate,
    ChangePasswordRequest,
    ResetPasswordRequest,
    UserCreate,
)


class TestUserCreate:
    def test_valid(self):
        data = UserCreate(email="A@X.com", password="Password123", full_name="Alice")
        assert data.full_name == "Alice"

    @pytest.mark.parametrize(
        "password",
        ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"],
    )
    def test_weak_password_rejected(self, password: str):
        with pytest.raises(ValidationError):
            UserCreate(email="a@x.com", password=password, full_name="Alice")

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(email="not-an-email", password="Password123", full_name="Alice")

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(email="a@x.com", password="Password123", full_name="   ")


class TestResetPasswordRequest:
    def test_passwords_must_match(self):
        with pytest.raises(ValidationError, match="Passwords do not match"):
            ResetPasswordRequest(token="t", new_password="NewPass12", confirm_password="NewPass13")

    def test_matching(self):
        data = ResetPasswordRequest(token="t", new_password="NewPass12", confirm_password="NewPass12")
        assert data.new_password == "NewPass12"

    def test_token_required(self):
        with pytest.raises(ValidationError):
            ResetPasswordRequest(token="", new_password="NewPass12", confirm_password="NewPass12")


def test_change_password_strength():
    with pytest.raises(ValidationError):
        ChangePasswordRequest(current_password="whatever", new_password="weak")


def test_admin_update_role_must_be_known():
    assert AdminUserUpdate(role="admin").role.value == "admin"
    with pytest.raises(ValidationError):
        AdminUserUpdate(role="superuser")

"""Pydantic request/response schemas."""

from app.schemas.auth import (
    ApiResponse,
    ChangePasswordRequest,
    CurrentUser,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    PasswordResetOptions,
    PasswordResetOptionsResponse,
    ProfileUpdate,
    RefreshRequest,
    RefreshResponse,
    SignupRequest,
    UserOut,
)

__all__ = [
    "ApiResponse",
    "ChangePasswordRequest",
    "CurrentUser",
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "PasswordResetOptions",
    "PasswordResetOptionsResponse",
    "ProfileUpdate",
    "RefreshRequest",
    "RefreshResponse",
    "SignupRequest",
    "UserOut",
]

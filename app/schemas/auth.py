"""Request/response schemas for auth endpoints."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.core.security import (
    BCRYPT_MAX_PASSWORD_BYTES,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
)

Role = Literal["STUDIO_ADMIN", "SUPER_ADMIN", "USER"]

# Loose shape check only; deliverability is not verified.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"
EMAIL_MAX_LEN = 320


def _check_password_bytes(v: str) -> str:
    if len(v.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return v


class CamelModel(BaseModel):
    """Base for wire models: camelCase JSON keys, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel):
    """Uniform envelope for every response, success or failure."""

    status_code: int
    data: Any = None
    message: str
    success: bool

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success", status_code: int = 200) -> "ApiResponse":
        return cls(status_code=status_code, data=data, message=message, success=True)

    @classmethod
    def error(cls, message: str, status_code: int, data: Any = None) -> "ApiResponse":
        return cls(status_code=status_code, data=data, message=message, success=False)


class SignupRequest(CamelModel):
    """Fields accepted when creating an account."""

    name: str | None = Field(default=None, max_length=255)
    username: str = Field(..., min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    email: str = Field(..., max_length=EMAIL_MAX_LEN, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    address: str | None = Field(default=None, max_length=1024)
    role: Role | None = None
    studio_name: str | None = Field(default=None, max_length=255)
    phone_no: str | None = Field(default=None, max_length=32)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        return _check_password_bytes(v)


class LoginRequest(CamelModel):
    """Credentials for login."""

    email: str = Field(..., min_length=1, max_length=EMAIL_MAX_LEN)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class LoginResponse(CamelModel):
    """Body returned after login; the same access token is also set as a cookie."""

    token: str
    username: str
    role: str
    email: str
    logo: str | None = None


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class RefreshResponse(CamelModel):
    """New access token; refresh_token is only present when rotation is enabled."""

    token: str
    refresh_token: str | None = None


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)

    @field_validator("new_password")
    @classmethod
    def validate_new_password_bytes(cls, v: str) -> str:
        return _check_password_bytes(v)


class ProfileUpdate(CamelModel):
    """
    Partial profile update: one optional field per editable attribute.

    Unset, None and empty-string values leave the stored field unchanged.
    """

    name: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=1024)
    phone_no: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=128)
    city: str | None = Field(default=None, max_length=128)
    zipcode: str | None = Field(default=None, max_length=32)
    about: str | None = None
    logo: str | None = Field(default=None, max_length=2048)
    cover_image: str | None = Field(default=None, max_length=2048)
    studio_name: str | None = Field(default=None, max_length=255)

    def changed_fields(self) -> dict[str, str]:
        """Fields carrying a non-empty value, keyed by attribute name."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None and value != ""
        }


class UserOut(CamelModel):
    """Public view of a user. Credential, session and OTP fields are never included."""

    id: int
    username: str
    email: str
    role: str
    name: str | None = None
    studio_name: str | None = None
    phone_no: str | None = None
    address: str | None = None
    country: str | None = None
    city: str | None = None
    zipcode: str | None = None
    about: str | None = None
    logo: str | None = None
    cover_image: str | None = None
    portfolio_images: list[str] = Field(default_factory=list)
    provider: str | None = None
    subscription_end_date: datetime | None = None
    last_seen: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CurrentUser(BaseModel):
    """Authenticated caller (id, role) taken from access token claims."""

    id: int
    role: str


class PasswordResetOptions(BaseModel):
    """Masked contact channels a password-reset code could be sent to."""

    sms: str | None = None
    email: str | None = None


class PasswordResetOptionsResponse(BaseModel):
    options: PasswordResetOptions

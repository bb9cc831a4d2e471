"""Auth endpoints (signup, login, refresh, logout, password, profile) and auth dependencies."""

from typing import Annotated

from fastapi import APIRouter, Body, Cookie, Depends, Header, Query, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.errors import InvalidTokenError, UnauthorizedError
from app.core.security import TokenIssuer, get_password_hasher, get_token_issuer
from app.schemas.auth import (
    ApiResponse,
    ChangePasswordRequest,
    CurrentUser,
    LoginRequest,
    LogoutRequest,
    PasswordResetOptionsResponse,
    ProfileUpdate,
    RefreshRequest,
    RefreshResponse,
    SignupRequest,
)
from app.services.auth_service import AuthService
from app.services.user_store import SqlUserStore

router = APIRouter()
security = HTTPBearer(auto_error=False)

ACCESS_COOKIE_NAME = "accessToken"
REFRESH_COOKIE_NAME = "refreshToken"
REFRESH_TOKEN_HEADER = "X-Refresh-Token"


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthService:
    """Dependency: AuthService bound to the request's DB session."""
    return AuthService(
        SqlUserStore(db),
        get_password_hasher(),
        get_token_issuer(),
        rotate_refresh_tokens=settings.REFRESH_TOKEN_ROTATION,
        revoke_sessions_on_password_change=settings.REVOKE_SESSIONS_ON_PASSWORD_CHANGE,
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    tokens: Annotated[TokenIssuer, Depends(get_token_issuer)],
    access_cookie: Annotated[str | None, Cookie(alias=ACCESS_COOKIE_NAME)] = None,
) -> CurrentUser:
    """
    Dependency: require a valid access token (Bearer header, else accessToken cookie).
    Access tokens are stateless; no DB lookup is made. Raises 401 if missing or invalid.
    """
    token = credentials.credentials if credentials is not None else access_cookie
    if not token:
        raise UnauthorizedError("Not authenticated")
    claims = tokens.verify_access_token(token)
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidTokenError() from e
    role = claims.get("role")
    if not isinstance(role, str):
        raise InvalidTokenError()
    return CurrentUser(id=user_id, role=role)


def _set_session_cookies(
    response: Response, settings: Settings, access_token: str, refresh_token: str
) -> None:
    _set_cookie(response, settings, ACCESS_COOKIE_NAME, access_token, 60 * settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    _set_refresh_cookie(response, settings, refresh_token)


def _set_refresh_cookie(response: Response, settings: Settings, refresh_token: str) -> None:
    _set_cookie(response, settings, REFRESH_COOKIE_NAME, refresh_token, 86400 * settings.REFRESH_TOKEN_EXPIRE_DAYS)


def _set_cookie(response: Response, settings: Settings, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
    )


def _clear_session_cookies(response: Response, settings: Settings) -> None:
    # Browsers ignore the deletion unless path/secure/samesite match the original cookie.
    for key in (REFRESH_COOKIE_NAME, ACCESS_COOKIE_NAME):
        response.delete_cookie(
            key=key,
            path="/",
            secure=settings.COOKIE_SECURE,
            httponly=True,
            samesite=settings.COOKIE_SAMESITE,
        )


@router.post("/signup", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupRequest,
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse:
    """Create an account; the response never includes the password hash."""
    user = svc.signup(body)
    return ApiResponse.ok(user, "User created successfully", status.HTTP_201_CREATED)


@router.post("/login", response_model=ApiResponse)
def login(
    body: LoginRequest,
    response: Response,
    svc: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApiResponse:
    """
    Authenticate with email and password.
    The access token is returned in the body and, with the refresh token, set as http-only cookies.
    """
    result = svc.login(body.email, body.password)
    _set_session_cookies(response, settings, result.access_token, result.refresh_token)
    return ApiResponse.ok(result.body, "User logged in successfully")


@router.post("/refresh", response_model=ApiResponse)
def refresh(
    response: Response,
    svc: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: Annotated[RefreshRequest | None, Body()] = None,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_COOKIE_NAME)] = None,
) -> ApiResponse:
    """Issue a new access token from the refresh cookie or the refreshToken body field."""
    token = refresh_cookie or (body.refresh_token if body else None)
    result = svc.refresh_access_token(token)
    if result.refresh_token:
        _set_refresh_cookie(response, settings, result.refresh_token)
    data = RefreshResponse(token=result.access_token, refresh_token=result.refresh_token)
    return ApiResponse.ok(
        data.model_dump(by_alias=True, exclude_none=True),
        "Access token refreshed successfully",
    )


@router.post("/change-password", response_model=ApiResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse:
    svc.change_password(current_user.id, body.old_password, body.new_password)
    return ApiResponse.ok(None, "Password changed successfully")


@router.post("/logout", response_model=ApiResponse)
def logout(
    response: Response,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    svc: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: Annotated[LogoutRequest | None, Body()] = None,
    refresh_header: Annotated[str | None, Header(alias=REFRESH_TOKEN_HEADER)] = None,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_COOKIE_NAME)] = None,
) -> ApiResponse:
    """End the session for the presented refresh token and clear both cookies."""
    token = refresh_header or refresh_cookie or (body.refresh_token if body else None)
    svc.logout_user(current_user.id, token)
    _clear_session_cookies(response, settings)
    return ApiResponse.ok({}, "User logged out successfully")


@router.get("/me", response_model=ApiResponse)
def me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse:
    user = svc.get_current_user(current_user.id)
    return ApiResponse.ok(user, "current user details fetched successfully")


@router.patch("/me", response_model=ApiResponse)
def edit_profile(
    body: ProfileUpdate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse:
    """Update profile fields; only studio admins may change the studio name."""
    user = svc.edit_profile(current_user.id, current_user.role, body)
    return ApiResponse.ok(user, "Profile updated successfully")


@router.get("/forgot-password/options", response_model=ApiResponse)
def forgot_password_options(
    email: Annotated[str, Query(min_length=1, max_length=320)],
    svc: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse:
    """Masked phone/email a reset code could be sent to. No code is sent here."""
    options = svc.password_reset_options(email)
    return ApiResponse.ok(
        PasswordResetOptionsResponse(options=options),
        "Choose a method to reset your password",
    )

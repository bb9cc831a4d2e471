"""
Auth service: signup, login, token refresh, logout, password change and profile access.

All session state lives in the UserStore; the service itself is stateless between calls.
Failures are raised as app.core.errors exceptions and mapped to responses by the API layer.
"""

import hmac
import logging
from datetime import UTC, datetime
from typing import NamedTuple
from urllib.parse import quote

from app.core.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.core.security import PasswordHasher, TokenIssuer
from app.models import User
from app.models.user import DEFAULT_ROLE
from app.schemas.auth import (
    LoginResponse,
    PasswordResetOptions,
    ProfileUpdate,
    SignupRequest,
    UserOut,
)
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

AVATAR_URL_TEMPLATE = "https://ui-avatars.com/api/?name={name}&background=random&color=fff"

# Only studio admins own a studio name.
STUDIO_NAME_ROLE = "STUDIO_ADMIN"


class LoginResult(NamedTuple):
    body: LoginResponse
    access_token: str
    refresh_token: str


class RefreshResult(NamedTuple):
    access_token: str
    # Set only when refresh token rotation is enabled.
    refresh_token: str | None = None


def default_avatar_url(name: str) -> str:
    """Avatar image URL derived from the display name."""
    return AVATAR_URL_TEMPLATE.format(name=quote(name, safe=""))


def mask_phone(phone_no: str | None) -> str | None:
    """Keep the last four characters, replace the rest with '*'."""
    if not phone_no or len(phone_no) <= 4:
        return None
    return "*" * (len(phone_no) - 4) + phone_no[-4:]


def mask_email(email: str | None) -> str | None:
    """First character, five '*', then the domain part starting at '@'."""
    if not email or "@" not in email:
        return None
    return f"{email[0]}*****{email[email.index('@'):]}"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        *,
        rotate_refresh_tokens: bool = False,
        revoke_sessions_on_password_change: bool = False,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.rotate_refresh_tokens = rotate_refresh_tokens
        self.revoke_sessions_on_password_change = revoke_sessions_on_password_change

    def signup(self, req: SignupRequest) -> UserOut:
        """Create an account. Username and email must both be unused."""
        if self.store.find_by_username(req.username) is not None:
            raise ConflictError("username already exists")
        if self.store.find_by_email(req.email) is not None:
            raise ConflictError("email already exists")

        user = self.store.create(
            name=req.name,
            username=req.username,
            email=req.email,
            password_hash=self.hasher.hash(req.password),
            address=req.address,
            role=req.role or DEFAULT_ROLE,
            studio_name=req.studio_name,
            phone_no=req.phone_no,
            logo=default_avatar_url(req.name or req.username),
            portfolio_images=[],
        )
        logger.info("User created: user_id=%s role=%s", user.id, user.role)
        return UserOut.model_validate(user)

    def login(self, email: str, password: str) -> LoginResult:
        """
        Check credentials and open a session.

        The new refresh token, its expiry and last_seen are written in one UPDATE,
        replacing any previous refresh token.
        """
        user = self.store.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found with this email")
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")

        access_token = self.tokens.issue_access_token(user.id, user.role)
        refresh_token = self.tokens.issue_refresh_token(user.id)
        now = datetime.now(UTC)
        self.store.update_fields(
            user.id,
            refresh_token=refresh_token,
            refresh_token_expiry=now + self.tokens.refresh_ttl,
            last_seen=now,
        )
        logger.info("User logged in: user_id=%s", user.id)

        body = LoginResponse(
            token=access_token,
            username=user.username,
            role=user.role,
            email=user.email,
            logo=user.logo,
        )
        return LoginResult(body=body, access_token=access_token, refresh_token=refresh_token)

    def refresh_access_token(self, refresh_token: str | None) -> RefreshResult:
        """
        Mint a new access token from the stored refresh token.

        The supplied token must equal the stored one, the stored expiry must not have
        passed, and the JWT itself must verify. Without rotation nothing is written.
        """
        if not refresh_token:
            raise UnauthorizedError("Refresh token required")

        user = self.store.find_by_refresh_token(refresh_token)
        if user is None:
            logger.warning("Refresh rejected: token not recognized")
            raise UnauthorizedError("Invalid refresh token")
        # Re-check in case the row changed between query and load.
        if not user.refresh_token or not hmac.compare_digest(
            user.refresh_token.encode("utf-8"), refresh_token.encode("utf-8")
        ):
            logger.warning("Refresh rejected: stored token changed, user_id=%s", user.id)
            raise UnauthorizedError("Invalid refresh token")
        if user.refresh_token_expiry is None or _as_utc(user.refresh_token_expiry) <= datetime.now(UTC):
            logger.warning("Refresh rejected: stored session expired, user_id=%s", user.id)
            raise UnauthorizedError("Refresh token expired")

        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except InvalidTokenError as e:
            logger.warning("Refresh rejected: token failed verification, user_id=%s", user.id)
            raise UnauthorizedError("Invalid refresh token") from e
        if claims.get("sub") != str(user.id):
            logger.warning("Refresh rejected: subject mismatch, user_id=%s", user.id)
            raise UnauthorizedError("Invalid refresh token")

        access_token = self.tokens.issue_access_token(user.id, user.role)
        if not self.rotate_refresh_tokens:
            return RefreshResult(access_token=access_token)

        new_refresh_token = self.tokens.issue_refresh_token(user.id)
        rotated = self.store.replace_refresh_token_if_matches(
            user.id,
            current=refresh_token,
            new=new_refresh_token,
            expiry=datetime.now(UTC) + self.tokens.refresh_ttl,
        )
        if not rotated:
            logger.warning("Refresh rejected: token replaced concurrently, user_id=%s", user.id)
            raise UnauthorizedError("Invalid refresh token")
        return RefreshResult(access_token=access_token, refresh_token=new_refresh_token)

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not self.hasher.verify(old_password, user.password_hash):
            raise InvalidCredentialsError("Invalid old password")

        fields: dict[str, object] = {"password_hash": self.hasher.hash(new_password)}
        if self.revoke_sessions_on_password_change:
            fields.update(refresh_token=None, refresh_token_expiry=None)
        self.store.update_fields(user.id, **fields)
        logger.info("Password changed: user_id=%s", user.id)

    def logout_user(self, user_id: int | None, refresh_token: str | None) -> None:
        """
        End the session only if the caller presents the user's current refresh token.
        The error does not say whether the id or the token was wrong.
        """
        if not user_id:
            raise ValidationError("User not found")
        if not refresh_token:
            raise ValidationError("Refresh token missing")
        if not self.store.clear_refresh_token_if_matches(user_id, refresh_token):
            logger.warning("Logout rejected: refresh token mismatch, user_id=%s", user_id)
            raise UnauthorizedError("Invalid refresh token")
        logger.info("User logged out: user_id=%s", user_id)

    def get_current_user(self, user_id: int) -> UserOut:
        return UserOut.model_validate(self._require_user(user_id))

    def edit_profile(self, user_id: int, role: str, update: ProfileUpdate) -> UserOut:
        """Apply non-empty fields; studio_name is ignored unless the caller is a studio admin."""
        fields = update.changed_fields()
        if role != STUDIO_NAME_ROLE:
            fields.pop("studio_name", None)
        if not self.store.update_fields(user_id, **fields):
            raise NotFoundError("User not found")
        return self.get_current_user(user_id)

    def password_reset_options(self, email: str) -> PasswordResetOptions:
        """Masked phone and email a reset code could be sent to."""
        user = self.store.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found with this email")
        return PasswordResetOptions(sms=mask_phone(user.phone_no), email=mask_email(user.email))

    def _require_user(self, user_id: int) -> User:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

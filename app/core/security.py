"""Password hashing and JWT creation/verification for authentication."""

import threading
import uuid
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

import bcrypt
import jwt

from app.core.config import get_settings
from app.core.errors import HashingError, InvalidTokenError

# bcrypt only looks at the first 72 bytes of input.
BCRYPT_MAX_PASSWORD_BYTES = 72

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 72

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class PasswordHasher:
    """Salted bcrypt hashing with a cap on concurrent hash/verify calls."""

    def __init__(self, rounds: int = 10, max_concurrency: int = 4) -> None:
        self.rounds = rounds
        self._slots = threading.BoundedSemaphore(max_concurrency)

    def hash(self, plaintext: str) -> str:
        """Hash a plain-text password for storage. Raises HashingError on unusable input."""
        pw_bytes = self._encode(plaintext)
        with self._slots:
            return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Verify a plain password against a stored hash."""
        try:
            pw_bytes = self._encode(plaintext)
        except HashingError:
            return False
        with self._slots:
            try:
                return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
            except (ValueError, TypeError, AttributeError):
                return False

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        if not isinstance(plaintext, str):
            raise HashingError("Password must be a string")
        try:
            pw_bytes = plaintext.encode("utf-8")
        except UnicodeEncodeError as e:
            raise HashingError("Password is not valid UTF-8") from e
        if len(pw_bytes) > BCRYPT_MAX_PASSWORD_BYTES:
            raise HashingError(f"Password exceeds {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return pw_bytes


class TokenIssuer:
    """
    Signs and verifies access and refresh JWTs.

    Access tokens carry {sub, role} and are never looked up server-side. Refresh
    tokens carry {sub, jti} and are signed with a different secret. The issuer
    keeps no session state.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(days=1),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("TokenIssuer requires non-empty secrets")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def issue_access_token(self, user_id: str | int, role: str) -> str:
        """Create an access token for the user id and role."""
        payload = {"sub": str(user_id), "role": role, "typ": ACCESS_TOKEN_TYPE}
        return self._sign(payload, self.access_secret, self.access_ttl)

    def issue_refresh_token(self, user_id: str | int) -> str:
        """Create a refresh token; jti keeps tokens issued in the same second distinct."""
        payload = {"sub": str(user_id), "typ": REFRESH_TOKEN_TYPE, "jti": uuid.uuid4().hex}
        return self._sign(payload, self.refresh_secret, self.refresh_ttl)

    def verify(self, token: str, secret: str) -> dict[str, Any]:
        """
        Decode and validate a JWT; return its claims.
        Raises InvalidTokenError for malformed, badly signed or expired tokens alike.
        """
        if not token or not isinstance(token, str):
            raise InvalidTokenError()
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError() from e

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self._verify_typed(token, self.access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self._verify_typed(token, self.refresh_secret, REFRESH_TOKEN_TYPE)

    def _verify_typed(self, token: str, secret: str, token_type: str) -> dict[str, Any]:
        claims = self.verify(token, secret)
        if claims.get("typ") != token_type:
            raise InvalidTokenError()
        return claims

    def _sign(self, payload: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = datetime.now(UTC)
        claims = {**payload, "iat": now, "exp": now + ttl}
        return jwt.encode(claims, secret, algorithm=self.algorithm)


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Process-wide hasher, so the concurrency cap applies across requests."""
    settings = get_settings()
    return PasswordHasher(
        rounds=settings.BCRYPT_ROUNDS,
        max_concurrency=settings.HASHING_MAX_CONCURRENCY,
    )


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Process-wide token issuer built from the configured secrets and lifetimes."""
    settings = get_settings()
    return TokenIssuer(
        access_secret=settings.ACCESS_TOKEN_SECRET.get_secret_value(),
        refresh_secret=settings.REFRESH_TOKEN_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )

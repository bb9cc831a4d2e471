"""Exceptions raised by the auth core; each carries the HTTP status it maps to."""


class AuthServiceError(Exception):
    """Base class for failures reported to the client as an error envelope."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid request"


class ConflictError(AuthServiceError):
    """Username or email already taken."""

    status_code = 409
    default_message = "Resource already exists"


class NotFoundError(AuthServiceError):
    """No identity matches the lookup."""

    status_code = 404
    default_message = "User not found"


class InvalidCredentialsError(AuthServiceError):
    """Password did not match the stored hash."""

    status_code = 401
    default_message = "Invalid credentials"


class UnauthorizedError(AuthServiceError):
    """Missing, invalid, expired or replayed token."""

    status_code = 401
    default_message = "Unauthorized"


class InvalidTokenError(UnauthorizedError):
    """
    Token failed signature, expiry or claim checks.

    Malformed, badly signed and expired tokens all carry the same message.
    """

    default_message = "Invalid or expired token"


class HashingError(AuthServiceError):
    """Credential could not be hashed. Internal; the client only sees a generic 500."""

    status_code = 500
    default_message = "Internal Server Error"

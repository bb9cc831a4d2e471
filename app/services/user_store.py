"""Persistence boundary for identity and session fields."""

import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError
from app.models import User

logger = logging.getLogger(__name__)

# Columns that may be written through update_fields; id is immutable.
UPDATABLE_FIELDS = frozenset(
    column.name for column in User.__table__.columns if column.name not in ("id", "created_at")
)


class UserStore(Protocol):
    """
    Contract used by AuthService. Each mutating call is a single UPDATE so it is
    atomic with respect to other operations on the same user.
    """

    def find_by_id(self, user_id: int) -> User | None: ...
    def find_by_username(self, username: str) -> User | None: ...
    def find_by_email(self, email: str) -> User | None: ...
    def find_by_refresh_token(self, refresh_token: str) -> User | None: ...
    def create(self, **fields: Any) -> User: ...
    def update_fields(self, user_id: int, **fields: Any) -> bool: ...
    def clear_refresh_token_if_matches(self, user_id: int, refresh_token: str) -> bool: ...
    def replace_refresh_token_if_matches(
        self, user_id: int, current: str, new: str, expiry: datetime
    ) -> bool: ...


class SqlUserStore:
    """UserStore backed by a request-scoped SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_id(self, user_id: int) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_username(self, username: str) -> User | None:
        return self.db.query(User).filter(User.username == username).first()

    def find_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()

    def find_by_refresh_token(self, refresh_token: str) -> User | None:
        return self.db.query(User).filter(User.refresh_token == refresh_token).first()

    def create(self, **fields: Any) -> User:
        """Insert a user. A unique-constraint violation becomes ConflictError."""
        user = User(**fields)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("User insert rejected by unique constraint")
            raise ConflictError("username or email already exists") from e
        self.db.refresh(user)
        return user

    def update_fields(self, user_id: int, **fields: Any) -> bool:
        """Set the given columns in one UPDATE. Returns False when no row matched."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if not fields:
            return self.find_by_id(user_id) is not None
        updated = (
            self.db.query(User)
            .filter(User.id == user_id)
            .update(fields, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def clear_refresh_token_if_matches(self, user_id: int, refresh_token: str) -> bool:
        """Compare-and-clear: drop the session only if it still holds this token."""
        updated = (
            self.db.query(User)
            .filter(User.id == user_id, User.refresh_token == refresh_token)
            .update(
                {User.refresh_token: None, User.refresh_token_expiry: None},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated > 0

    def replace_refresh_token_if_matches(
        self, user_id: int, current: str, new: str, expiry: datetime
    ) -> bool:
        """Compare-and-swap the stored refresh token (used for rotation)."""
        updated = (
            self.db.query(User)
            .filter(User.id == user_id, User.refresh_token == current)
            .update(
                {User.refresh_token: new, User.refresh_token_expiry: expiry},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated > 0

"""ORM model for application users: identity, credential and session fields."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.models.base import Base

ROLES = ("STUDIO_ADMIN", "SUPER_ADMIN", "USER")
DEFAULT_ROLE = "STUDIO_ADMIN"

PROVIDERS = ("GOOGLE", "FACEBOOK", "LOCAL")
DEFAULT_PROVIDER = "LOCAL"


class User(Base):
    """
    User account for login, session tracking and studio profile data.

    refresh_token and refresh_token_expiry are set and cleared together; at most one
    refresh token is outstanding per user. password_hash never leaves the store.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=DEFAULT_ROLE)

    refresh_token = Column(Text, nullable=True, index=True)
    refresh_token_expiry = Column(DateTime(timezone=True), nullable=True)
    last_seen = Column(DateTime(timezone=True), nullable=True)

    # Profile
    name = Column(String(255), nullable=True)
    studio_name = Column(String(255), nullable=True)
    phone_no = Column(String(32), nullable=True)
    address = Column(String(1024), nullable=True)
    country = Column(String(128), nullable=True)
    city = Column(String(128), nullable=True)
    zipcode = Column(String(32), nullable=True)
    about = Column(Text, nullable=True)
    logo = Column(String(2048), nullable=True)
    cover_image = Column(String(2048), nullable=True)
    portfolio_images = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)

    # Federated login placeholders; not used by password login.
    provider = Column(String(32), nullable=False, default=DEFAULT_PROVIDER)
    provider_id = Column(String(255), nullable=True)

    # Password-reset OTP placeholders; never exposed.
    otp = Column(String(32), nullable=True)
    otp_expiry = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

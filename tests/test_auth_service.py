"""Tests for AuthService: signup, login, refresh, logout, password change and profile edits."""

import unittest
from datetime import UTC, datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.core.security import PasswordHasher, TokenIssuer
from app.models import Base
from app.schemas.auth import ProfileUpdate, SignupRequest
from app.services.auth_service import AuthService, default_avatar_url, mask_email, mask_phone
from app.services.user_store import SqlUserStore

HASHER = PasswordHasher(rounds=4)
ISSUER = TokenIssuer(
    access_secret="test-access-secret-0123456789abcdef",
    refresh_secret="test-refresh-secret-0123456789abcdef",
)


def _session() -> Session:
    """Fresh in-memory database with the users table."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False)()


def _signup(**kwargs: object) -> SignupRequest:
    """Build a SignupRequest for alice unless overridden."""
    defaults = {
        "name": "Alice Smith",
        "username": "alice",
        "email": "a@x.com",
        "password": "secret1",
        "address": "1 Main St",
        "phone_no": "5551234567",
    }
    defaults.update(kwargs)
    return SignupRequest(**defaults)


class AuthServiceTestCase(unittest.TestCase):
    rotate = False
    revoke = False

    def setUp(self) -> None:
        self.db = _session()
        self.store = SqlUserStore(self.db)
        self.svc = AuthService(
            self.store,
            HASHER,
            ISSUER,
            rotate_refresh_tokens=self.rotate,
            revoke_sessions_on_password_change=self.revoke,
        )

    def tearDown(self) -> None:
        self.db.close()


class TestSignup(AuthServiceTestCase):
    def test_creates_user_without_exposing_hash(self) -> None:
        out = self.svc.signup(_signup())
        self.assertEqual(out.username, "alice")
        self.assertEqual(out.role, "STUDIO_ADMIN")
        self.assertNotIn("password_hash", out.model_dump())
        self.assertNotIn("refresh_token", out.model_dump())

        stored = self.store.find_by_id(out.id)
        self.assertTrue(stored.password_hash)
        self.assertNotEqual(stored.password_hash, "secret1")
        self.assertTrue(HASHER.verify("secret1", stored.password_hash))

    def test_default_logo_from_name_or_username(self) -> None:
        out = self.svc.signup(_signup())
        self.assertEqual(
            out.logo,
            "https://ui-avatars.com/api/?name=Alice%20Smith&background=random&color=fff",
        )
        out2 = self.svc.signup(_signup(name=None, username="bob", email="b@x.com"))
        self.assertEqual(out2.logo, default_avatar_url("bob"))

    def test_explicit_role(self) -> None:
        out = self.svc.signup(_signup(role="USER"))
        self.assertEqual(out.role, "USER")

    def test_duplicate_username_conflicts(self) -> None:
        self.svc.signup(_signup())
        with self.assertRaises(ConflictError):
            self.svc.signup(_signup(email="other@x.com"))

    def test_duplicate_email_conflicts(self) -> None:
        self.svc.signup(_signup())
        with self.assertRaises(ConflictError):
            self.svc.signup(_signup(username="alice2"))


class TestLogin(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.svc.signup(_signup())

    def test_login_issues_tokens_and_stores_session(self) -> None:
        result = self.svc.login("a@x.com", "secret1")

        claims = ISSUER.verify_access_token(result.access_token)
        self.assertEqual(int(claims["sub"]), self.user.id)
        self.assertEqual(claims["role"], "STUDIO_ADMIN")
        self.assertEqual(result.body.token, result.access_token)
        self.assertEqual(result.body.username, "alice")
        self.assertEqual(result.body.email, "a@x.com")

        stored = self.store.find_by_id(self.user.id)
        self.assertEqual(stored.refresh_token, result.refresh_token)
        self.assertIsNotNone(stored.refresh_token_expiry)
        self.assertIsNotNone(stored.last_seen)

    def test_unknown_email(self) -> None:
        with self.assertRaises(NotFoundError):
            self.svc.login("nobody@x.com", "secret1")

    def test_wrong_password_leaves_store_untouched(self) -> None:
        with self.assertRaises(InvalidCredentialsError):
            self.svc.login("a@x.com", "wrong-password")
        stored = self.store.find_by_id(self.user.id)
        self.assertIsNone(stored.refresh_token)
        self.assertIsNone(stored.refresh_token_expiry)
        self.assertIsNone(stored.last_seen)

    def test_second_login_replaces_refresh_token(self) -> None:
        first = self.svc.login("a@x.com", "secret1")
        second = self.svc.login("a@x.com", "secret1")
        self.assertNotEqual(first.refresh_token, second.refresh_token)
        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(first.refresh_token)
        self.svc.refresh_access_token(second.refresh_token)


class TestRefresh(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.svc.signup(_signup())
        self.session = self.svc.login("a@x.com", "secret1")

    def test_refresh_mints_access_token_without_rotation(self) -> None:
        result = self.svc.refresh_access_token(self.session.refresh_token)
        claims = ISSUER.verify_access_token(result.access_token)
        self.assertEqual(int(claims["sub"]), self.user.id)
        self.assertIsNone(result.refresh_token)
        self.assertEqual(self.store.find_by_id(self.user.id).refresh_token, self.session.refresh_token)

    def test_missing_token(self) -> None:
        for token in (None, ""):
            with self.assertRaises(UnauthorizedError) as ctx:
                self.svc.refresh_access_token(token)
            self.assertEqual(ctx.exception.message, "Refresh token required")

    def test_valid_but_unstored_token_rejected(self) -> None:
        other = ISSUER.issue_refresh_token(self.user.id)
        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(other)

    def test_store_expiry_is_authoritative(self) -> None:
        self.store.update_fields(
            self.user.id, refresh_token_expiry=datetime.now(UTC) - timedelta(minutes=1)
        )
        with self.assertRaises(UnauthorizedError) as ctx:
            self.svc.refresh_access_token(self.session.refresh_token)
        self.assertEqual(ctx.exception.message, "Refresh token expired")

    def test_stored_token_that_fails_verification_rejected(self) -> None:
        # Stored value matches but the JWT itself is expired.
        expired = TokenIssuer(
            access_secret=ISSUER.access_secret,
            refresh_secret=ISSUER.refresh_secret,
            refresh_ttl=timedelta(seconds=-5),
        ).issue_refresh_token(self.user.id)
        self.store.update_fields(self.user.id, refresh_token=expired)
        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(expired)

    def test_refresh_after_logout_fails(self) -> None:
        self.svc.logout_user(self.user.id, self.session.refresh_token)
        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(self.session.refresh_token)

    def test_refresh_uses_current_role(self) -> None:
        self.store.update_fields(self.user.id, role="SUPER_ADMIN")
        result = self.svc.refresh_access_token(self.session.refresh_token)
        self.assertEqual(ISSUER.verify_access_token(result.access_token)["role"], "SUPER_ADMIN")


class TestRefreshWithRotation(AuthServiceTestCase):
    rotate = True

    def test_rotation_replaces_stored_token(self) -> None:
        user = self.svc.signup(_signup())
        session = self.svc.login("a@x.com", "secret1")

        result = self.svc.refresh_access_token(session.refresh_token)
        self.assertIsNotNone(result.refresh_token)
        self.assertNotEqual(result.refresh_token, session.refresh_token)
        self.assertEqual(self.store.find_by_id(user.id).refresh_token, result.refresh_token)

        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(session.refresh_token)
        self.svc.refresh_access_token(result.refresh_token)


class TestLogout(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.svc.signup(_signup())
        self.session = self.svc.login("a@x.com", "secret1")

    def test_logout_clears_session(self) -> None:
        self.svc.logout_user(self.user.id, self.session.refresh_token)
        stored = self.store.find_by_id(self.user.id)
        self.assertIsNone(stored.refresh_token)
        self.assertIsNone(stored.refresh_token_expiry)

    def test_missing_token_is_client_error_without_mutation(self) -> None:
        for token in (None, ""):
            with self.assertRaises(ValidationError):
                self.svc.logout_user(self.user.id, token)
        self.assertEqual(self.store.find_by_id(self.user.id).refresh_token, self.session.refresh_token)

    def test_missing_user_id(self) -> None:
        with self.assertRaises(ValidationError):
            self.svc.logout_user(None, self.session.refresh_token)

    def test_wrong_token_or_user_gives_same_error(self) -> None:
        other = self.svc.signup(_signup(username="bob", email="b@x.com"))
        messages = set()
        for user_id, token in ((self.user.id, "bogus"), (other.id, self.session.refresh_token)):
            with self.assertRaises(UnauthorizedError) as ctx:
                self.svc.logout_user(user_id, token)
            messages.add(ctx.exception.message)
        self.assertEqual(messages, {"Invalid refresh token"})
        self.assertEqual(self.store.find_by_id(self.user.id).refresh_token, self.session.refresh_token)

    def test_second_logout_fails(self) -> None:
        self.svc.logout_user(self.user.id, self.session.refresh_token)
        with self.assertRaises(UnauthorizedError):
            self.svc.logout_user(self.user.id, self.session.refresh_token)


class TestChangePassword(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.svc.signup(_signup())

    def test_old_password_stops_working(self) -> None:
        self.svc.change_password(self.user.id, "secret1", "new-secret")
        with self.assertRaises(InvalidCredentialsError):
            self.svc.login("a@x.com", "secret1")
        self.assertEqual(self.svc.login("a@x.com", "new-secret").body.username, "alice")

    def test_wrong_old_password(self) -> None:
        with self.assertRaises(InvalidCredentialsError):
            self.svc.change_password(self.user.id, "nope", "new-secret")
        self.svc.login("a@x.com", "secret1")

    def test_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            self.svc.change_password(9999, "secret1", "new-secret")

    def test_session_kept_by_default(self) -> None:
        session = self.svc.login("a@x.com", "secret1")
        self.svc.change_password(self.user.id, "secret1", "new-secret")
        self.svc.refresh_access_token(session.refresh_token)


class TestChangePasswordRevokesSessions(AuthServiceTestCase):
    revoke = True

    def test_session_revoked(self) -> None:
        user = self.svc.signup(_signup())
        session = self.svc.login("a@x.com", "secret1")
        self.svc.change_password(user.id, "secret1", "new-secret")
        self.assertIsNone(self.store.find_by_id(user.id).refresh_token)
        with self.assertRaises(UnauthorizedError):
            self.svc.refresh_access_token(session.refresh_token)


class TestProfile(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin = self.svc.signup(_signup(studio_name="Old Studio"))
        self.member = self.svc.signup(
            _signup(username="bob", email="b@x.com", role="USER", studio_name=None)
        )

    def test_get_current_user(self) -> None:
        out = self.svc.get_current_user(self.admin.id)
        self.assertEqual(out.email, "a@x.com")
        with self.assertRaises(NotFoundError):
            self.svc.get_current_user(9999)

    def test_edit_applies_only_non_empty_fields(self) -> None:
        out = self.svc.edit_profile(
            self.admin.id,
            "STUDIO_ADMIN",
            ProfileUpdate(city="Porto", address="", about=None, studio_name="New Studio"),
        )
        self.assertEqual(out.city, "Porto")
        self.assertEqual(out.address, "1 Main St")
        self.assertEqual(out.studio_name, "New Studio")

    def test_studio_name_ignored_for_other_roles(self) -> None:
        out = self.svc.edit_profile(
            self.member.id, "USER", ProfileUpdate(studio_name="Sneaky", country="PT")
        )
        self.assertIsNone(out.studio_name)
        self.assertEqual(out.country, "PT")

    def test_edit_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            self.svc.edit_profile(9999, "USER", ProfileUpdate(city="Porto"))
        with self.assertRaises(NotFoundError):
            self.svc.edit_profile(9999, "USER", ProfileUpdate())


class TestPasswordResetOptions(AuthServiceTestCase):
    def test_masks_contact_channels(self) -> None:
        self.svc.signup(_signup())
        options = self.svc.password_reset_options("a@x.com")
        self.assertEqual(options.sms, "******4567")
        self.assertEqual(options.email, "a*****@x.com")

    def test_unknown_email(self) -> None:
        with self.assertRaises(NotFoundError):
            self.svc.password_reset_options("nobody@x.com")

    def test_mask_helpers(self) -> None:
        self.assertIsNone(mask_phone(None))
        self.assertIsNone(mask_phone("1234"))
        self.assertEqual(mask_phone("12345"), "*2345")
        self.assertIsNone(mask_email("no-at-sign"))
        self.assertEqual(mask_email("photo@studio.test"), "p*****@studio.test")


if __name__ == "__main__":
    unittest.main()

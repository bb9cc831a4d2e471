"""
Create a user (e.g. the first super admin). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user root admin@studio.test your-secure-password SUPER_ADMIN
"""
import argparse
import logging
import sys

from pydantic import ValidationError as SchemaValidationError

from app.core.database import SessionLocal
from app.core.errors import AuthServiceError
from app.core.security import get_password_hasher, get_token_issuer
from app.models.user import ROLES
from app.schemas.auth import SignupRequest
from app.services.auth_service import AuthService
from app.services.user_store import SqlUserStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Studio user without the signup UI.")
    parser.add_argument("username", help="Username (1-255 chars)")
    parser.add_argument("email", help="Login email")
    parser.add_argument("password", help="Password (6-72 chars)")
    parser.add_argument("role", nargs="?", default="SUPER_ADMIN", choices=list(ROLES))
    parser.add_argument("--name", default=None, help="Display name (defaults to username)")
    args = parser.parse_args(argv)

    try:
        req = SignupRequest(
            username=args.username.strip(),
            email=args.email.strip(),
            password=args.password,
            role=args.role,
            name=args.name,
        )
    except SchemaValidationError as e:
        for err in e.errors():
            print(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        svc = AuthService(SqlUserStore(db), get_password_hasher(), get_token_issuer())
        user = svc.signup(req)
        print(f"Created user '{user.username}' with role '{user.role}'.")
        return 0
    except AuthServiceError as e:
        print(e.message, file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

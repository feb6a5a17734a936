"""
Create a console account outside the API (e.g. the first superuser). Run from project root:
  python -m app.scripts.create_user USERNAME PASSWORD [--dept-id ID] [--role-id ID ...]
Example:
  python -m app.scripts.create_user admin your-secure-password --role-id 1
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.database import SessionLocal, transaction
from app.core.exceptions import UserCenterError
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    hash_password,
)
from app.models import Role, User
from app.services.role_assignment import replace_roles
from app.services.uniqueness import ensure_unique

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a user-center account (no registration UI).")
    parser.add_argument("username", help=f"Username ({USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("--nickname", default="", help="Display name")
    parser.add_argument("--dept-id", type=int, default=None, help="Owning department id")
    parser.add_argument(
        "--role-id",
        type=int,
        action="append",
        default=[],
        help="Role id to grant (repeatable)",
    )
    args = parser.parse_args()

    username = args.username.strip()
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(
            f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.",
            file=sys.stderr,
        )
        return 1

    db = SessionLocal()
    try:
        ensure_unique(db, username=username, phone=None, email=None, action="add")
        known = {role_id for (role_id,) in db.query(Role.id).filter(Role.id.in_(args.role_id))}
        missing = sorted(set(args.role_id) - known)
        if missing:
            print(f"Unknown role ids: {missing}", file=sys.stderr)
            return 1

        user = User(
            username=username,
            nickname=args.nickname,
            password_hash=hash_password(args.password),
            dept_id=args.dept_id,
            created_by="cli",
        )
        with transaction(db):
            db.add(user)
            db.flush()
            replace_roles(db, user.id, args.role_id)
        logger.info("Created user", extra={"user_id": user.id, "username": username})
        print(f"Created user '{username}' with id {user.id}.")
        return 0
    except UserCenterError as e:
        print(e.message, file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        logger.exception("Create user failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

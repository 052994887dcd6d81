#!/usr/bin/env python3
"""
Create (or promote) a staff account for the admin endpoints.

    python create_admin.py admin@example.com 'a-strong-password' --first-name Ada --last-name Admin
"""
import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from core.config import settings  # noqa: E402
from core.db import db_session, init_db  # noqa: E402
from core.logging import configure_logging  # noqa: E402
from models.enums import UserRole  # noqa: E402
from models.user import User  # noqa: E402
from security.password import hash_password  # noqa: E402

logger = logging.getLogger("create_admin")


def create_admin(email: str, password: str, first_name: str, last_name: str, role: str) -> User:
    with db_session() as db:
        user = db.query(User).filter(User.email == email.lower()).one_or_none()
        if user:
            user.role = role
            user.password_hash = hash_password(password)
            user.is_active = True
            logger.info("Updated existing user %s to role %s", user.email, role)
        else:
            user = User(
                first_name=first_name,
                last_name=last_name,
                email=email.lower(),
                password_hash=hash_password(password),
                role=role,
            )
            db.add(user)
            logger.info("Created %s user %s", role, user.email)
        return user


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    parser.add_argument("--role", choices=[UserRole.STAFF.value, UserRole.ADMIN.value], default=UserRole.ADMIN.value)
    args = parser.parse_args(argv)

    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    configure_logging(settings.LOG_LEVEL)
    init_db()
    create_admin(args.email, args.password, args.first_name, args.last_name, args.role)
    return 0


if __name__ == "__main__":
    sys.exit(main())

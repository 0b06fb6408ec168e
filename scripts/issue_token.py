#!/usr/bin/env python3
"""
Script to issue a Libris session token for a user, by email.

With --create the user is registered first, which is how the first
admin of a fresh database is bootstrapped.
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from libris.core import auth
from libris.core.api import LibrisAPI
from libris.core.db import SessionLocal
from libris.core.exceptions import LibrisAPIError
from libris.core.models import Role, User


def main():
    parser = argparse.ArgumentParser(
        description="Issue a Libris session token for a user"
    )
    parser.add_argument(
        "--email",
        type=str,
        required=True,
        help="Email of the user the token is issued to"
    )
    parser.add_argument(
        "--create",
        action="store_true",
        default=False,
        help="Register the user first if they do not exist"
    )
    parser.add_argument(
        "--role",
        type=str,
        choices=[r.value for r in Role],
        default=Role.ADMIN.value,
        help="Role for a user created with --create"
    )
    parser.add_argument("--first-name", type=str, default="Library")
    parser.add_argument("--last-name", type=str, default="Admin")

    args = parser.parse_args()

    db = SessionLocal()
    try:
        user = User.exists(db, args.email)
        if not user and args.create:
            user = LibrisAPI.add_user(
                db,
                email=args.email,
                first_name=args.first_name,
                last_name=args.last_name,
                role=Role(args.role),
            )
            print(f"Created {user.role.value} {user.email} (id {user.id})")
        if not user:
            print(f"✗ No user with email {args.email}. Use --create to register one.")
            sys.exit(1)
        if not user.is_active:
            print(f"✗ User {args.email} is not active.")
            sys.exit(1)
        print(auth.login(db, user))
    except LibrisAPIError as e:
        print(f"✗ Failed: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()

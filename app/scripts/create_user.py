"""
Create a user (e.g. the first admin). Run from project root:
  python -m app.scripts.create_user EMAIL USERNAME PASSWORD [--role admin]
Example:
  python -m app.scripts.create_user admin@example.com admin your-secure-password --role admin
"""
import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

from app.core.database import SessionLocal
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    hash_password,
)
from app.models.user import User
from app.services.credential_store import CredentialStore, DuplicateRecordError


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a user without going through registration.")
    parser.add_argument("email", help="Email address (stored lower-cased)")
    parser.add_argument("username", help=f"Username ({USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("--role", default="user", help="Role (free text; 'admin' can read any profile)")
    parser.add_argument("--first-name", default="")
    parser.add_argument("--last-name", default="")
    args = parser.parse_args()

    email = args.email.strip().lower()
    username = args.username.strip()
    if "@" not in email:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        store = CredentialStore(db)
        if store.get_by_email(email) or store.get_by_username(username):
            print(f"User '{email}' or '{username}' already exists.", file=sys.stderr)
            return 1
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(args.password),
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
            is_active=True,
        )
        try:
            store.create_user(user)
        except DuplicateRecordError:
            print(f"User '{email}' or '{username}' already exists.", file=sys.stderr)
            return 1
        print(f"Created user '{username}' ({user.id}) with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

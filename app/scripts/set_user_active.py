"""
Enable or disable a user account. Disabling takes effect on the next
validation, login or refresh, even for tokens already issued.

  python -m app.scripts.set_user_active USERNAME --disable
  python -m app.scripts.set_user_active USERNAME --enable
"""
import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

from app.core.database import SessionLocal
from app.services.credential_store import CredentialStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Enable or disable a user account.")
    parser.add_argument("username", help="Username of the account")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--enable", action="store_true")
    group.add_argument("--disable", action="store_true")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        store = CredentialStore(db)
        user = store.get_by_username(args.username.strip())
        if user is None:
            print(f"User '{args.username}' not found.", file=sys.stderr)
            return 1
        store.set_active(user.id, args.enable)
        state = "enabled" if args.enable else "disabled"
        print(f"User '{args.username}' {state}.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

"""Emergency password reset for a plots administrator; overridden on the next service start."""

import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from plots.config import Settings
from plots.database import Database


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Emergency, temporary password reset for a plots administrator",
        epilog=(
            "The reset lasts only until the service next starts: every start re-applies "
            "PLOTS_ADMIN_PASSWORD to the configured admin. Change that setting for a "
            "permanent password."
        ),
    )
    parser.add_argument(
        "username",
        nargs="?",
        default=None,
        help="Administrator to update (defaults to PLOTS_ADMIN_USERNAME or 'admin')",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL of the store (defaults to the PLOTS_* database settings)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("New password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 8:
            print("Password must be at least 8 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    username = args.username or settings.admin_username
    password = prompt_for_password()

    if args.database_url:
        database = Database(args.database_url)
    else:
        database = Database.from_settings(settings)

    try:
        database.connect(attempts=1)
        updated = database.set_admin_password(username, password)
    finally:
        database.close()

    if not updated:
        print(f"Error: no administrator named {username!r}", file=sys.stderr)
        return 1

    print(f"Password updated for {username}.")
    print("This is temporary: the service re-applies PLOTS_ADMIN_PASSWORD on its next start.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from feedserver.config import load_settings
from feedserver.credentials import PasswordHasher
from feedserver.database import Database
from feedserver.errors import FeedError
from feedserver.validation import validate_signup


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a feed user account")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--mongo-uri",
        dest="mongo_uri",
        default=None,
        help="MongoDB connection string (defaults to FEED_MONGO_URI or mongodb://localhost:27017)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password.strip()) < 5:
            print("Password must be at least 5 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    settings = load_settings()
    database = Database.from_uri(args.mongo_uri or settings.mongo_uri, settings.database_name)
    database.initialize()

    try:
        validate_signup(args.email, args.name, password)
        hashed = PasswordHasher(rounds=settings.password_rounds).hash(password.strip())
        user = database.create_user(args.email, args.name, hashed)
    except FeedError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        for detail in exc.details:
            print(f"  - {detail.get('message')}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

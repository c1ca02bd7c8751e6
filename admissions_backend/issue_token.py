"""Print a bearer token for an existing staff account.

Usage:
    python -m admissions_backend.issue_token counselor@example.com [--minutes 60]
"""
import argparse
import sys

from admissions_backend.auth.jwt_handler import create_access_token
from admissions_backend.database import SessionLocal
from admissions_backend.models import appointment, schedule, student  # noqa: F401
from admissions_backend.models.user import User


def issue_token(email: str, expires_minutes: int | None = None, session_factory=SessionLocal) -> str:
    db = session_factory()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
    finally:
        db.close()
    if user is None:
        raise LookupError(f"No user with email {email}")
    return create_access_token(subject=user.email, expires_minutes=expires_minutes, user_type=user.user_type)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Issue an access token for a staff account.")
    parser.add_argument("email")
    parser.add_argument("--minutes", type=int, default=None, help="token lifetime in minutes")
    args = parser.parse_args(argv)

    try:
        token = issue_token(args.email, args.minutes)
    except LookupError as exc:
        print(exc, file=sys.stderr)
        sys.exit(1)
    print(token)


if __name__ == "__main__":
    main()

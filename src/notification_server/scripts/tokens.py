# src/notification_server/scripts/tokens.py
"""Mint signed access tokens for local development and smoke tests.

Usage:
    python -m notification_server.scripts.tokens user-1 --minutes 60
"""

from __future__ import annotations

import argparse
from datetime import timedelta

from notification_server.core.security import create_access_token
from notification_server.core.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mint a bearer token for a user id.")
    parser.add_argument("user_id", help="Identity carried in the token subject")
    parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Token lifetime in minutes (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)",
    )
    return parser


def main(argv: list[str] | None = None) -> str:
    args = build_parser().parse_args(argv)
    expires_in = timedelta(minutes=args.minutes) if args.minutes else None
    token = create_access_token(args.user_id, settings, expires_in=expires_in)
    print(token)
    return token


if __name__ == "__main__":
    main()

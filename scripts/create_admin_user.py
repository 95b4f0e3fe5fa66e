#!/usr/bin/env python3
"""Create a user (admin by default) directly in the configured credential store."""

from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

from dotenv import load_dotenv

from drone_analytics.auth.errors import AuthError
from drone_analytics.auth.models import AuthIdentity, Role
from drone_analytics.auth.repository import create_auth_repository
from drone_analytics.auth.service import AuthService
from drone_analytics.auth.tokens import TokenIssuer
from drone_analytics.core.config import AppConfig
from drone_analytics.core.logging import setup_logging

APP_ROOT = Path(__file__).resolve().parent.parent

# Operators running this script act with admin authority.
CLI_ACTOR = AuthIdentity(user_id="cli", role=Role.ADMIN, expires_at=0)


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Create a user account.")
    parser.add_argument("--username", required=True, help="Unique username.")
    parser.add_argument("--email", required=True, help="Unique email address.")
    parser.add_argument(
        "--role",
        choices=[str(role) for role in Role],
        default=str(Role.ADMIN),
        help="Role of the new account.",
    )
    parser.add_argument(
        "--password",
        default="",
        help="Password. Prompted for when omitted.",
    )
    return parser.parse_args()


def main() -> int:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = _parse_args()

    password = args.password or getpass.getpass("Password: ")
    repo = create_auth_repository(config.storage, APP_ROOT)
    service = AuthService(
        repo=repo, config=config.auth, tokens=TokenIssuer.from_config(config.auth)
    )
    try:
        user = service.register(
            args.username, args.email, password, role=Role(args.role), actor=CLI_ACTOR
        )
    except AuthError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        repo.close()

    print(f"created {user.role} user {user.username} ({user.user_id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

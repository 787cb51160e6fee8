#!/usr/bin/env python3
"""
RoleGate -- Password authentication, JWT issuance, and role-based authorization.

Operator CLI. The HTTP API is served separately (uvicorn api.main:app).

Usage:
  python main.py create-admin --username root --email root@example.com
  python main.py create-admin --username root --email root@example.com --password 's3cret'
  python main.py check-token eyJhbGciOi...

Environment variables:
  DATABASE_URL      SQLAlchemy URL of the user/role database (default: ./rolegate.db)
  JWT_SIGNING_KEY   HS256 signing key, at least 32 characters. Required unless DEBUG=true.
  JWT_ISSUER        Expected token issuer (default: rolegate)
  JWT_AUDIENCE      Expected token audience (default: rolegate-clients)
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.service import AuthService
from auth.store import UserRoleStore
from core.config import get_settings

logger = logging.getLogger("rolegate.cli")


def _read_password() -> Optional[str]:
    """Prompt twice without echo. Returns None if the entries differ."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_admin(args: argparse.Namespace, service: AuthService) -> int:
    """Create the first administrator. Refused once any Admin exists."""
    password = args.password if args.password is not None else _read_password()
    if password is None:
        return 1

    result = service.bootstrap_admin(args.username, args.email, password)
    if not result.ok:
        print(f"  [!] {result.failure.message} ({result.failure.code})")
        return 1

    session = result.value
    print(f"  Created administrator '{session.username}' (id {session.user_id}).")
    print(f"  Roles: {', '.join(session.roles)}")
    return 0


def check_token(args: argparse.Namespace, service: AuthService) -> int:
    """Validate a token and print its claims, or the reason it was rejected."""
    result = service.decode_token(args.token)
    if not result.ok:
        print(f"  [!] Token rejected: {result.failure.code}")
        return 1

    claims = result.value
    print(f"  subject:  {claims.subject}")
    print(f"  user id:  {claims.user_id or '(none)'}")
    print(f"  roles:    {', '.join(claims.roles) or '(none)'}")
    print(f"  token id: {claims.token_id}")
    print(f"  issued:   {claims.issued_at.isoformat()}")
    print(f"  expires:  {claims.expires_at.isoformat()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rolegate",
        description="RoleGate operator tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --username root --email root@example.com
  python main.py check-token "$TOKEN"
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = commands.add_parser("create-admin", help="Create the first administrator account")
    admin.add_argument("--username", required=True, help="Username for the new administrator")
    admin.add_argument("--email", required=True, help="Email address for the new administrator")
    admin.add_argument(
        "--password",
        default=None,
        help="Password (prompted without echo when omitted; avoid passing it on shared machines)",
    )
    admin.set_defaults(handler=create_admin)

    token = commands.add_parser("check-token", help="Validate a token and print its claims")
    token.add_argument("token", metavar="TOKEN", help="Compact JWT to check")
    token.set_defaults(handler=check_token)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    settings = get_settings()
    store = UserRoleStore(settings.database_url)
    try:
        return args.handler(args, AuthService.from_settings(store, settings))
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())

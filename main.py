#!/usr/bin/env python3
"""
credvault -- Username/password registration and bearer token issuance.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py register alice
  python main.py login alice
  python main.py delete-user alice

Passwords are prompted for (no echo) unless --password is given.

Environment variables (see core/config.py for the full list):
  SECRET_KEY    Token signing key, at least 32 characters. Required unless DEBUG=true.
  STORE_URL     redis://host:6379/0 (default) or any SQLAlchemy URL, e.g. sqlite:///credvault.db
  TOKEN_EXPIRE_SECONDS  Token lifetime: 3600, 30m, 1h, ... (default 1h)
"""

import argparse
import getpass
import sys
from typing import Optional

from api.models import RegisterRequest
from auth.service import AuthService
from core.config import get_settings
from core.errors import CredVaultError
from kv.store import open_store


def _read_password(given: Optional[str], confirm: bool = False) -> str:
    if given is not None:
        return given
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def _build_service() -> AuthService:
    settings = get_settings()
    store = open_store(
        settings.store_url,
        connect_timeout=settings.store_connect_timeout,
        socket_timeout=settings.store_socket_timeout,
    )
    return AuthService.from_settings(store, settings)


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


def cmd_register(args: argparse.Namespace, service: AuthService) -> None:
    password = _read_password(args.password, confirm=True)
    # Same policy the HTTP endpoint enforces.
    try:
        RegisterRequest(username=args.username, password=password)
    except ValueError as e:
        print(f"  [!] {e}")
        sys.exit(1)
    registration = service.register(args.username, password)
    print(f"User registered successfully: {registration.username}")


def cmd_login(args: argparse.Namespace, service: AuthService) -> None:
    password = _read_password(args.password)
    issued = service.authenticate(args.username, password)
    print(issued.token)


def cmd_delete_user(args: argparse.Namespace, service: AuthService) -> None:
    if service.delete_user(args.username):
        print(f"Deleted {args.username}")
    else:
        print(f"  [!] No such user: {args.username}")
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="credvault",
        description="Register users and issue bearer tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py register alice
  python main.py login alice --password 'Secret123!'
  STORE_URL=sqlite:///credvault.db DEBUG=true python main.py serve
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API under uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")

    for name, help_text in (
        ("register", "Create a user"),
        ("login", "Authenticate and print a bearer token"),
        ("delete-user", "Remove a user record"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("username", help="Case-sensitive username")
        if name != "delete-user":
            p.add_argument("--password", default=None, help="Password (prompted for if omitted)")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    if args.command == "serve":
        cmd_serve(args)
        return

    handlers = {
        "register": cmd_register,
        "login": cmd_login,
        "delete-user": cmd_delete_user,
    }
    try:
        service = _build_service()
        try:
            handlers[args.command](args, service)
        finally:
            service.store.close()
    except CredVaultError as e:
        print(f"  [!] {e.message}")
        sys.exit(1)
    except ValueError as e:
        # Settings validation (e.g. missing SECRET_KEY) surfaces here.
        print(f"  [!] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
gymops -- identity backend: user registration, login and bearer tokens.

Usage:
  python main.py
  python main.py --port 4000 --environment development
  python main.py --dsn postgresql+psycopg://gymops@localhost/gymops --token-key <base64>

Environment variables (flags override them):
  DATABASE_URL / GOOSE_DBSTRING   Database DSN
  AUTH_TOKEN_KEY                  Base64-encoded token signing key (32+ bytes decoded)
  ENVIRONMENT                     development | production
"""

import argparse
import sys

import uvicorn
from pydantic import ValidationError

from core.config import Settings


def _build_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "port": args.port,
        "environment": args.environment,
        "database_url": args.dsn,
        "auth_token_key": args.token_key,
        "host": args.host,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="gymops",
        description="Run the gymops identity API server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --environment development
  python main.py --port 8080 --dsn sqlite:///gymops.db
  AUTH_TOKEN_KEY=$(openssl rand -base64 32) python main.py
        """,
    )
    parser.add_argument("--port", type=int, default=None, help="Port the server listens on (default: 4000)")
    parser.add_argument("--host", default=None, help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument(
        "--environment",
        choices=["development", "production"],
        default=None,
        help="Server environment (default: production)",
    )
    parser.add_argument("--dsn", default=None, metavar="URL", help="Database DSN")
    parser.add_argument("--token-key", default=None, metavar="BASE64", help="Authentication token key secret")
    args = parser.parse_args(argv)

    try:
        settings = _build_settings(args)
    except ValidationError as exc:
        print(f"  [!] Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    # Imported here so logging is configured only when the server actually runs.
    from api.main import create_app

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

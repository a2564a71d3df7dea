#!/usr/bin/env python3
"""Management helpers for the todo server."""
from __future__ import annotations

import argparse
import asyncio
import secrets
import sys
from pathlib import Path
from typing import Dict, List, Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import SecretStr

from todo_app import database
from todo_app.auth.passwords import PasswordHasher
from todo_app.auth.service import Authenticator
from todo_app.auth.users import SQLUserStore
from todo_app.errors import ValidationFailed


def _update_env_file(env_path: Path, updates: Dict[str, str]) -> None:
    lines: List[str]
    if env_path.exists():
        lines = env_path.read_text().splitlines()
    else:
        lines = []

    rendered: List[str] = []
    seen: set[str] = set()
    for line in lines:
        key, sep, _value = line.partition("=")
        stripped_key = key.strip()
        if sep and stripped_key in updates:
            rendered.append(f"{stripped_key}={updates[stripped_key]}")
            seen.add(stripped_key)
        else:
            rendered.append(line)

    for key, value in updates.items():
        if key not in seen:
            rendered.append(f"{key}={value}")

    env_path.write_text("\n".join(rendered) + "\n")


def _command_create_user(args: argparse.Namespace) -> int:
    engine = database.build_engine(args.database_url)
    hasher = PasswordHasher(max_workers=1)
    try:
        database.init_storage(engine)
        authenticator = Authenticator(SQLUserStore(engine), hasher)
        try:
            user = asyncio.run(
                authenticator.register(args.username, args.email, SecretStr(args.password))
            )
        except ValidationFailed as exc:
            for field, reasons in exc.errors.items():
                for reason in reasons:
                    print(f"{field}: {reason}", file=sys.stderr)
            return 1
    finally:
        hasher.shutdown()
        engine.dispose()
    print(f"Created user '{user.username}' (id={user.user_id})")
    return 0


def _command_rotate_secrets(args: argparse.Namespace) -> int:
    env_path = Path(args.env_file).expanduser().resolve()
    env_path.parent.mkdir(parents=True, exist_ok=True)
    _update_env_file(env_path, {"FLASH_HMAC_KEY": secrets.token_urlsafe(48)})
    print(f"Wrote new secrets to {env_path}; restart the server to use them")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this invocation",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user = subparsers.add_parser("create-user", help="Register a user account")
    create_user.add_argument("--username", required=True)
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--password", required=True)
    create_user.set_defaults(func=_command_create_user)

    rotate = subparsers.add_parser("rotate-secrets", help="Generate a new flash signing key")
    rotate.add_argument(
        "--env-file",
        default=".env",
        help="Path to the environment file (default: %(default)s)",
    )
    rotate.set_defaults(func=_command_rotate_secrets)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())

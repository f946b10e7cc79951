#!/usr/bin/env python3
"""Bootstrap a user (typically the first admin) and print its API key."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from allyhub.core.database import init_db, session_scope, shutdown_db, start_db  # noqa: E402
from allyhub.models.database import ROLE_ADMIN, ROLE_USER  # noqa: E402
from allyhub.services.users import create_user  # noqa: E402


async def run(args: argparse.Namespace) -> str:
    await start_db(args.database_url)
    try:
        if args.create_schema:
            await init_db()
        async with session_scope() as session:
            user = await create_user(
                session,
                player_id=args.player_id,
                player_name=args.player_name,
                alliance_id=args.alliance_id,
                role=args.role,
            )
            return user.api_key
    finally:
        await shutdown_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an API-key user.")
    parser.add_argument("--player-id", type=int, default=None)
    parser.add_argument("--player-name", default=None)
    parser.add_argument("--alliance-id", type=int, default=None)
    parser.add_argument("--role", choices=[ROLE_ADMIN, ROLE_USER], default=ROLE_ADMIN)
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--create-schema", action="store_true", help="Run metadata.create_all first")
    args = parser.parse_args()

    print(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

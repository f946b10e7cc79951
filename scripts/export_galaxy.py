#!/usr/bin/env python3
"""Write the galaxy-viewer export document to a file (for cron jobs)."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from allyhub.core.config import LOG_LEVEL  # noqa: E402
from allyhub.core.database import session_scope, shutdown_db, start_db  # noqa: E402
from allyhub.services.export import export_json  # noqa: E402

logger = logging.getLogger("export_galaxy")


async def run(out_path: Path, database_url: str | None) -> int:
    await start_db(database_url)
    try:
        async with session_scope() as session:
            document = await export_json(session)
    finally:
        await shutdown_db()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(document, encoding="utf-8")
    return len(document)


def main() -> None:
    parser = argparse.ArgumentParser(description="Export the reconciled universe for the galaxy viewer.")
    parser.add_argument("--out", type=Path, default=Path("galaxy.json"), help="Output file (default: galaxy.json)")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL)
    size = asyncio.run(run(args.out, args.database_url))
    logger.info("export written to %s (%s bytes)", args.out, size)


if __name__ == "__main__":
    main()

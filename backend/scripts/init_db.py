from __future__ import annotations

import argparse
import asyncio

from styllio.db import create_tables, engine
from styllio.logger import logger
from styllio.models import Base


async def init_db(*, drop: bool) -> None:
    if drop:
        logger.warning("Dropping all tables before create")
    await create_tables(drop=drop)
    await engine.dispose()
    logger.info("Database initialized", extra={"tables": sorted(Base.metadata.tables)})


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create all database tables (idempotent).",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first. DELETES ALL DATA.",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(init_db(drop=bool(args.drop)))


if __name__ == "__main__":
    main()

"""
Script to create the users table.

Run this after starting PostgreSQL:

    python create_tables.py          # create
    python create_tables.py --drop   # drop (for testing)
"""
import asyncio
import sys

from dripcore.config import get_settings
from dripcore.database import build_engine
from dripcore.logging_config import configure_logging
from dripcore.models.base import Base
from dripcore.models.user import User  # noqa: F401  registers the table

log = configure_logging()


async def create_all_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("tables_created", tables=sorted(Base.metadata.tables))


async def drop_all_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    log.info("tables_dropped", tables=sorted(Base.metadata.tables))


async def main(argv: list[str]):
    engine = build_engine(get_settings())
    if "--drop" in argv:
        await drop_all_tables(engine)
    else:
        await create_all_tables(engine)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))

"""Create the database schema: ``python -m shook.db.init_db [--drop]``."""

import asyncio
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncEngine

from shook.core.config import settings
from shook.db.models import Base
from shook.db.session import engine

logger = logging.getLogger(__name__)


async def init_models(db_engine: AsyncEngine, *, drop: bool = False) -> list[str]:
    """Create missing tables, dropping every table first when ``drop`` is set."""

    async with db_engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    tables = sorted(Base.metadata.tables)
    logger.info("Database schema ready", extra={"tables": tables, "dropped": drop})
    return tables


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(init_models(engine, drop="--drop" in sys.argv[1:]))

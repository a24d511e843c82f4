"""Initialize database schema for the content refinery.

Creates the pgvector extension and the content_records table.
Run this before starting the API server.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy import text

from be.config import settings
from be.db import engine
from be.logging_config import setup_logging
from be.models import Base

logger = logging.getLogger("init_db")


async def init_database(drop: bool = False):
    """Create all database tables."""
    logger.info(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        logger.info("Enabled pgvector extension")

        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            logger.info("Dropped existing tables")

        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(Base.metadata.tables.keys())}")

    await engine.dispose()


async def main():
    """Main entry point."""
    setup_logging()
    try:
        await init_database(drop="--drop" in sys.argv[1:])
    except Exception as e:
        logger.error(f"Error initializing database: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

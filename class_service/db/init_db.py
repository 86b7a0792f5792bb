import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from class_service.db.base import Base
from class_service.db.session import async_engine

logger = logging.getLogger(__name__)


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """
    Crea las tablas que falten (gym_class, booking y sus índices).

    No modifica tablas existentes.
    """
    engine = engine or async_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Tablas verificadas: {sorted(Base.metadata.tables)}")


if __name__ == "__main__":
    from class_service.core.logging_config import setup_logging

    setup_logging()
    asyncio.run(create_tables())

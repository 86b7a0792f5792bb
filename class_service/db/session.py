from contextlib import asynccontextmanager
import logging

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from class_service.core.config import get_settings
from class_service.core.exceptions import ClassServiceError

logger = logging.getLogger(__name__)

settings_instance = get_settings()


def build_async_engine(database_url: str) -> AsyncEngine:
    """
    Crea el engine async adecuado para la URL indicada.

    PostgreSQL (asyncpg) usa un pool dimensionado por configuración. SQLite
    (aiosqlite) se usa en desarrollo y tests y no admite pool_size.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"timeout": 30},
        )
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=settings_instance.DB_POOL_SIZE,
        max_overflow=settings_instance.DB_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=280,
        connect_args={
            "server_settings": {
                "application_name": "gym_class_service",
                "statement_timeout": "30000"
            }
        },
    )


# Ocultar credenciales en el log
display_url = make_url(settings_instance.DATABASE_URL).render_as_string(hide_password=True)

async_engine = build_async_engine(settings_instance.DATABASE_URL)
logger.info(f"Async engine creado correctamente: {display_url}")

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_db():
    """
    Dependencia async para obtener sesión de base de datos.

    Uso en endpoints:
        @router.get("/endpoint")
        async def my_endpoint(db: AsyncSession = Depends(get_async_db)):
            result = await db.execute(select(GymClass))
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Error SQLAlchemy en sesión async: {e}", exc_info=True)
            await session.rollback()
            raise
        except ClassServiceError:
            # Errores de negocio: flujo normal, solo deshacer lo pendiente
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_async_db_for_jobs():
    """
    Context manager async para tareas programadas (APScheduler).

    Para endpoints FastAPI usar get_async_db() con Depends().

    Uso:
        async with get_async_db_for_jobs() as db:
            await class_service.mark_completed_classes(db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Error SQLAlchemy en background job async DB: {e}", exc_info=True)
            await session.rollback()
            raise
        finally:
            await session.close()
            logger.debug("Sesión async DB cerrada correctamente en background job")

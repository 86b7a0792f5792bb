from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from datetime import timezone
from functools import wraps
from typing import Optional
import asyncio
import logging

from class_service.core.config import get_settings
from class_service.db.session import get_async_db_for_jobs
from class_service.services.class_lifecycle import class_service

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler: Optional[AsyncIOScheduler] = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar tareas async en caso de errores de BD.

    Args:
        max_retries: Número máximo de reintentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff lineal: delay * (attempt + 1)
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if attempt < max_retries - 1:
                        wait_time = delay * (attempt + 1)
                        logger.warning(
                            f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                            f"after {wait_time}s: {str(e)}"
                        )
                        await asyncio.sleep(wait_time)
                    else:
                        logger.error(
                            f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                            exc_info=True
                        )
                        raise
        return wrapper
    return decorator


@retry_on_db_error(max_retries=3, delay=2)
async def mark_completed_classes_job() -> int:
    """
    Tarea periódica: completa las clases terminadas y sus reservas.
    """
    logger.debug("Running scheduled task: mark_completed_classes")
    async with get_async_db_for_jobs() as db:
        return await class_service.mark_completed_classes(db)


def init_scheduler() -> Optional[AsyncIOScheduler]:
    """
    Inicializa el programador de tareas.

    Returns:
        El scheduler iniciado, o None si el barrido periódico está desactivado
    """
    global _scheduler

    interval = get_settings().COMPLETION_SWEEP_INTERVAL_MINUTES
    if interval <= 0:
        logger.info("Barrido periódico de clases desactivado (COMPLETION_SWEEP_INTERVAL_MINUTES=0)")
        return None

    logger.info("Initializing scheduler with UTC timezone")
    _scheduler = AsyncIOScheduler(timezone=timezone.utc)

    _scheduler.add_job(
        mark_completed_classes_job,
        trigger=IntervalTrigger(minutes=interval),
        id='mark_completed_classes',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    _scheduler.start()
    logger.info(f"Scheduler started: barrido de clases completadas cada {interval} minutos")
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler detenido")


# Función para obtener el scheduler (útil para pruebas y otros módulos)
def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler

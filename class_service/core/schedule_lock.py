"""
Locks de agenda para serializar escrituras que compiten por el mismo monitor,
la misma sala o la misma clase.

En PostgreSQL se usan advisory locks de transacción (``pg_advisory_xact_lock``):
se liberan solos en el commit o rollback, así que el servicio debe hacer commit
dentro del bloque ``async with``. En otros motores (SQLite en desarrollo y
tests) se usa un ``asyncio.Lock`` por clave, válido dentro de un proceso.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List
import asyncio
import logging
import weakref

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Un mapa de locks por event loop: un asyncio.Lock no se puede compartir entre loops.
# Cada lock vive mientras alguien lo tenga o lo espere; después desaparece del mapa.
_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, weakref.WeakValueDictionary]" = weakref.WeakKeyDictionary()


def monitor_lock_key(monitor_id: str) -> str:
    return f"schedule:monitor:{monitor_id}"


def room_lock_key(room_key: str) -> str:
    return f"schedule:room:{room_key}"


def class_lock_key(class_id: int) -> str:
    return f"class:{class_id}"


def _get_local_lock(key: str) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _local_locks.get(loop)
    if locks is None:
        locks = _local_locks[loop] = weakref.WeakValueDictionary()
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


@asynccontextmanager
async def schedule_guard(db: AsyncSession, keys: Iterable[str]) -> AsyncIterator[None]:
    """
    Adquiere los locks de las claves indicadas, siempre en orden alfabético
    para que dos operaciones con claves solapadas no se bloqueen mutuamente.

    Uso:
        async with schedule_guard(db, [monitor_lock_key(m), room_lock_key(r)]):
            ...comprobar conflictos, escribir...
            await db.commit()
    """
    ordered: List[str] = sorted(set(keys))

    if db.get_bind().dialect.name == "postgresql":
        for key in ordered:
            await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        logger.debug(f"Advisory locks adquiridos: {ordered}")
        yield
        return

    acquired: List[asyncio.Lock] = []
    try:
        for key in ordered:
            lock = _get_local_lock(key)
            await lock.acquire()
            acquired.append(lock)
        logger.debug(f"Locks locales adquiridos: {ordered}")
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()

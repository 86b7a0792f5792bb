"""
Cliente Redis con connection pooling.

Redis es opcional en este servicio: solo se usa como cache de identidades
verificadas contra el servicio de autenticación. Si REDIS_URL no está
configurada o el pool no se puede crear, las dependencias entregan ``None``
y la verificación se hace siempre contra el servicio remoto.

Para usar en endpoints:
```python
@router.get("/items")
async def read_items(redis: Optional[Redis] = Depends(get_redis_client)):
    if redis is not None:
        cached = await redis.get("clave")
```
"""
from typing import AsyncIterator, Optional
import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from class_service.core.config import get_settings

logger = logging.getLogger(__name__)

# Declaración global del pool de conexiones
REDIS_POOL: Optional[ConnectionPool] = None


async def initialize_redis_pool() -> Optional[ConnectionPool]:
    """
    Inicializa el pool de conexiones a Redis.
    Debe llamarse una sola vez al iniciar la aplicación.
    """
    global REDIS_POOL
    if REDIS_POOL is not None:
        return REDIS_POOL

    settings = get_settings()
    if not settings.REDIS_URL:
        logger.info("REDIS_URL no configurada: cache de identidades desactivada.")
        return None

    try:
        logger.info("Inicializando connection pool para Redis...")
        REDIS_POOL = ConnectionPool.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_POOL_SOCKET_TIMEOUT,
            health_check_interval=settings.REDIS_POOL_HEALTH_CHECK_INTERVAL,
        )
        logger.info(
            f"Connection pool de Redis inicializado correctamente "
            f"(max_connections={settings.REDIS_POOL_MAX_CONNECTIONS})."
        )
    except (RedisError, ValueError) as e:
        logger.error(f"Error al inicializar connection pool de Redis: {e}", exc_info=True)
        REDIS_POOL = None
    return REDIS_POOL


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """
    Dependencia FastAPI que entrega un cliente Redis por request, o None si
    Redis no está disponible.

    El cliente se cierra al terminar el request para devolver la conexión al pool.
    """
    pool = REDIS_POOL or await initialize_redis_pool()
    if pool is None:
        yield None
        return

    client = Redis(connection_pool=pool)
    try:
        yield client
    finally:
        await client.aclose()


async def close_redis_client() -> None:
    """
    Cierra el pool de conexiones Redis al finalizar la aplicación.
    """
    global REDIS_POOL

    if REDIS_POOL:
        logger.info("Cerrando connection pool de Redis...")
        await REDIS_POOL.disconnect()
        REDIS_POOL = None
        logger.info("Connection pool de Redis cerrado.")

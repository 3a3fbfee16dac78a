"""
Cliente Redis asíncrono con connection pool compartido.

Se usa sólo como caché de lectura (listados de tipos de clase y de familias
de turnos). Si Redis no está disponible la dependencia entrega ``None`` y los
servicios consultan directamente la base de datos del tenant.

Uso en endpoints:
```python
@router.get("/items")
async def read_items(redis_client: Optional[Redis] = Depends(get_redis_client)):
    ...
```
"""

import logging
from typing import Optional

from redis.asyncio import ConnectionPool, Redis

from gymapp.core.config import get_settings

logger = logging.getLogger(__name__)

# Declaración global del pool de conexiones
REDIS_POOL: Optional[ConnectionPool] = None


async def initialize_redis_pool():
    """
    Inicializa el pool de conexiones a Redis.
    Debe llamarse una sola vez al iniciar la aplicación.
    """
    global REDIS_POOL
    if REDIS_POOL is None:
        settings = get_settings()
        redis_url = settings.REDIS_URL
        if not redis_url:
            logger.error("La URL de Redis está vacía. No se puede inicializar el pool.")
            raise ValueError("La URL de Redis está vacía.")

        logger.info(f"Inicializando connection pool para Redis en {redis_url}...")
        try:
            REDIS_POOL = ConnectionPool.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
                socket_timeout=settings.REDIS_POOL_SOCKET_TIMEOUT,
                health_check_interval=settings.REDIS_POOL_HEALTH_CHECK_INTERVAL,
            )
            logger.info(
                f"Connection pool de Redis inicializado (max_connections={settings.REDIS_POOL_MAX_CONNECTIONS})."
            )
        except Exception as e:
            logger.error(f"Error al inicializar connection pool de Redis: {e}", exc_info=True)
            REDIS_POOL = None
            raise


async def get_redis_client():
    """
    Dependencia FastAPI: cliente Redis nuevo por request sobre el pool compartido.

    Entrega ``None`` si el pool no pudo crearse; el caché es opcional.
    """
    if REDIS_POOL is None:
        logger.warning("Redis no disponible, las lecturas se harán sin caché")
        yield None
        return

    client = Redis(connection_pool=REDIS_POOL)
    try:
        yield client
    finally:
        # Devolver la conexión al pool
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error cerrando cliente Redis: {e}")


async def close_redis_client():
    """
    Cierra el pool de conexiones Redis al finalizar la aplicación.
    """
    global REDIS_POOL

    if REDIS_POOL:
        logger.info("Cerrando connection pool de Redis...")
        await REDIS_POOL.disconnect()
        REDIS_POOL = None
        logger.info("Connection pool de Redis cerrado.")

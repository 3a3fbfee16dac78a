import json
import logging
from typing import Any, Callable, Optional, Type, TypeVar
from datetime import date, datetime, time

from pydantic import BaseModel
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


def json_serializer(obj):
    """Serializador JSON que maneja fechas y horas."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    raise TypeError(f"Tipo no serializable: {type(obj)}")


def tenant_key(client_id: str, *parts: Any) -> str:
    """Las claves siempre llevan el tenant como prefijo: ``<client_id>:<parte>:<parte>``."""
    return ":".join([client_id, *[str(part) for part in parts]])


class CacheService:
    """
    Caché de lectura sobre Redis para modelos Pydantic o listas de modelos.
    Si Redis falla o no está disponible se consulta directamente la base.
    """

    @staticmethod
    async def get_or_set(
        redis_client: Optional[Redis],
        cache_key: str,
        db_fetch_func: Callable,
        model_class: Type[T],
        expiry_seconds: int = 300,
        is_list: bool = False
    ) -> Any:
        """
        Obtiene un objeto de Redis o lo guarda si no existe.

        Args:
            redis_client: Cliente Redis a usar (None = sin caché)
            cache_key: Clave única del objeto en caché
            db_fetch_func: Función asíncrona que obtiene los datos de la BD
            model_class: Clase del modelo Pydantic que se debe devolver
            expiry_seconds: Tiempo de expiración en segundos
            is_list: Si es True, se espera/devuelve una lista de objetos
        """
        if not redis_client:
            return await db_fetch_func()

        try:
            cached_data = await redis_client.get(cache_key)
            if cached_data:
                logger.debug(f"Cache hit para clave: {cache_key}")
                try:
                    data = json.loads(cached_data)
                    if is_list:
                        return [model_class.model_validate(item) for item in data]
                    return model_class.model_validate(data)
                except Exception as e:
                    logger.error(f"Error al deserializar datos de caché para clave {cache_key}: {e}", exc_info=True)
                    await redis_client.delete(cache_key)
        except Exception as e:
            logger.error(f"Error al leer del caché: {str(e)}", exc_info=True)

        logger.debug(f"Cache miss para clave: {cache_key}")
        data = await db_fetch_func()

        if data is None:
            return data
        try:
            if is_list:
                json_data = [model_class.model_validate(item).model_dump() for item in data]
            else:
                json_data = model_class.model_validate(data).model_dump()
            serialized_data = json.dumps(json_data, default=json_serializer)
            await redis_client.set(cache_key, serialized_data, ex=expiry_seconds)
            logger.debug(f"Datos guardados en caché con clave: {cache_key}, TTL: {expiry_seconds}s")
        except Exception as e:
            logger.error(f"Error al guardar en caché para {cache_key}: {e}", exc_info=True)

        return data

    @staticmethod
    async def delete_pattern(redis_client: Optional[Redis], pattern: str) -> int:
        """
        Elimina todas las claves que coinciden con un patrón.

        Args:
            redis_client: Cliente Redis a usar
            pattern: Patrón de claves a eliminar (ej: "gym1:class_types:*")

        Returns:
            int: Número de claves eliminadas
        """
        if not redis_client:
            return 0

        try:
            keys = []
            async for key in redis_client.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                count = await redis_client.delete(*keys)
                logger.info(f"Eliminadas {count} claves con patrón: {pattern}")
                return count
            return 0
        except Exception as e:
            logger.error(f"Error al eliminar claves con patrón {pattern}: {str(e)}", exc_info=True)
            return 0

    @staticmethod
    async def invalidate_schedule_caches(redis_client: Optional[Redis], client_id: str) -> None:
        """Listados de tipos de clase (créditos disponibles) y de familias de turnos."""
        await CacheService.delete_pattern(redis_client, tenant_key(client_id, "class_types", "*"))
        await CacheService.delete_pattern(redis_client, tenant_key(client_id, "grouped_classes", "*"))


cache_service = CacheService()

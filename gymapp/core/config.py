import os
import json
from typing import Any, Dict, List, Optional, Union
from functools import lru_cache
import logging

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    JWT_ALGORITHM: str = "HS256"

    # Información del proyecto
    PROJECT_NAME: str = "GymApp"
    PROJECT_DESCRIPTION: str = "API de turnos, créditos y suscripciones para gimnasios multi-tenant"
    VERSION: str = "1.0.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "False").lower() in ("true", "1", "t")
    LOG_TO_FILE: bool = True

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Tenancy: mapa estático clientId -> URL de base de datos
    TENANT_DATABASE_URLS: Dict[str, str] = {}

    @field_validator("TENANT_DATABASE_URLS", mode="before")
    def parse_tenant_urls(cls, v: Any) -> Dict[str, str]:
        """Acepta un JSON o un dict y normaliza postgres:// a postgresql://"""
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                raise ValueError("TENANT_DATABASE_URLS debe ser un objeto JSON {clientId: url}")
        normalized = {}
        for client_id, url in v.items():
            if url.startswith("postgres://"):
                logger.info("Corrigiendo formato de postgres:// a postgresql:// para tenant %s", client_id)
                url = "postgresql://" + url[len("postgres://"):]
            normalized[str(client_id)] = url
        return normalized

    # Panel SUPER-ADMIN (resolución dinámica de tenants)
    SUPER_ADMIN_API_URL: Optional[str] = None
    INTERNAL_ADMIN_API_KEY: Optional[str] = None
    SUPER_ADMIN_TIMEOUT_SECONDS: int = 10

    # Reglas de negocio
    DEFAULT_GYM_TIMEZONE: str = "America/Argentina/Buenos_Aires"
    UNENROLL_CUTOFF_MINUTES: int = 60
    UNIVERSAL_CLASS_TYPE_NAME: str = "Crédito Universal"
    DEFAULT_AUTO_RENEW_AMOUNT: int = 8

    # Configuración de Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_POOL_MAX_CONNECTIONS: int = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "50"))
    REDIS_POOL_SOCKET_TIMEOUT: int = int(os.getenv("REDIS_POOL_SOCKET_TIMEOUT", "5"))
    REDIS_POOL_HEALTH_CHECK_INTERVAL: int = int(os.getenv("REDIS_POOL_HEALTH_CHECK_INTERVAL", "30"))

    @field_validator("REDIS_URL", mode="before")
    def clean_redis_url(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            # Eliminar comentarios y espacios
            if '#' in v:
                v = v.split('#')[0]
            return v.strip()
        return "redis://localhost:6379/0"

    # TTLs de caché (segundos)
    CACHE_TTL_CLASS_TYPES: int = 300
    CACHE_TTL_GROUPED_CLASSES: int = 120

    # Configuración de OneSignal para notificaciones push
    ONESIGNAL_APP_ID: Optional[str] = None
    ONESIGNAL_REST_API_KEY: Optional[str] = None

    # Tareas programadas
    SCHEDULER_ENABLED: bool = True
    NOTIFICATION_RETENTION_DAYS: int = 30
    CLASS_REMINDER_HOURS_AHEAD: int = 2


# Usar una función con caché para obtener la configuración
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    logger.info("Configuración cargada correctamente")
    return settings

"""
Registro de tenants: cada gimnasio tiene su propia base de datos.

El engine y el sessionmaker de un tenant se construyen una sola vez (bajo un
lock) y se reutilizan en todos los requests. La URL sale de
``TENANT_DATABASE_URLS`` o, si no está ahí, del panel SUPER-ADMIN.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gymapp.core.config import get_settings
from gymapp.core.exceptions import AuthorizationError, NotFoundError
from gymapp.db.init_db import init_tenant_db

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATES = ("activo", "periodo_prueba")


@dataclass
class TenantContext:
    client_id: str
    engine: Engine
    session_factory: sessionmaker
    api_secret_key: Optional[str] = field(default=None, repr=False)


def _normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def _hide_credentials(url: str) -> str:
    if "@" in url:
        scheme = url.split("://")[0]
        return f"{scheme}://***@{url.split('@', 1)[1]}"
    return url


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        # SQLite no aplica las claves foráneas salvo que se pida en cada conexión
        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=180,
    )


class TenantRegistry:
    def __init__(self):
        self._tenants: Dict[str, TenantContext] = {}
        self._lock = threading.Lock()

    def get(self, client_id: str) -> TenantContext:
        tenant = self._tenants.get(client_id)
        if tenant is not None:
            return tenant
        with self._lock:
            tenant = self._tenants.get(client_id)
            if tenant is None:
                url, secret = self._resolve_database_url(client_id)
                tenant = self._build(client_id, url, secret)
        return tenant

    def register(self, client_id: str, url: str, engine: Optional[Engine] = None) -> TenantContext:
        """Registra un tenant con una URL conocida (o un engine ya creado)."""
        with self._lock:
            return self._build(client_id, _normalize_url(url), None, engine=engine)

    def client_ids(self) -> List[str]:
        """
        Tenants sobre los que corren las tareas programadas: los configurados
        estáticamente, los clientes activos del panel SUPER-ADMIN y los ya
        registrados en este proceso.
        """
        ids = list(get_settings().TENANT_DATABASE_URLS.keys())
        ids.extend(cid for cid in self._fetch_active_client_ids() if cid not in ids)
        ids.extend(cid for cid in self._tenants if cid not in ids)
        return ids

    def dispose_all(self) -> None:
        with self._lock:
            for tenant in self._tenants.values():
                tenant.engine.dispose()
            self._tenants.clear()

    def _build(self, client_id: str, url: str, secret: Optional[str], engine: Optional[Engine] = None) -> TenantContext:
        engine = engine or build_engine(url)
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        init_tenant_db(engine, session_factory)
        tenant = TenantContext(
            client_id=client_id,
            engine=engine,
            session_factory=session_factory,
            api_secret_key=secret,
        )
        self._tenants[client_id] = tenant
        logger.info(f"Tenant '{client_id}' registrado en {_hide_credentials(url)}")
        return tenant

    def _fetch_active_client_ids(self) -> List[str]:
        """Clientes con suscripción activa o en período de prueba según SUPER-ADMIN."""
        settings = get_settings()
        if not settings.SUPER_ADMIN_API_URL or not settings.INTERNAL_ADMIN_API_KEY:
            return []

        url = f"{settings.SUPER_ADMIN_API_URL.rstrip('/')}/api/clients/internal/all-clients"
        try:
            response = requests.get(
                url,
                headers={"x-internal-api-key": settings.INTERNAL_ADMIN_API_KEY},
                timeout=settings.SUPER_ADMIN_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Error obteniendo la lista de clientes de SUPER-ADMIN: {e}", exc_info=True)
            return []

        if response.status_code != 200:
            logger.error(f"SUPER-ADMIN respondió {response.status_code} al listar clientes")
            return []
        clients = response.json()
        if not isinstance(clients, list):
            logger.error("La respuesta de SUPER-ADMIN no es una lista de clientes")
            return []

        return [
            str(client.get("clientId") or client.get("_id"))
            for client in clients
            if client.get("estadoSuscripcion") in ACTIVE_SUBSCRIPTION_STATES
            and (client.get("clientId") or client.get("_id"))
        ]

    def _resolve_database_url(self, client_id: str):
        settings = get_settings()
        static_url = settings.TENANT_DATABASE_URLS.get(client_id)
        if static_url:
            return static_url, None

        if not settings.SUPER_ADMIN_API_URL or not settings.INTERNAL_ADMIN_API_KEY:
            logger.warning(f"Tenant '{client_id}' desconocido y SUPER-ADMIN no configurado")
            raise NotFoundError(f"Cliente '{client_id}' no encontrado.")

        url = f"{settings.SUPER_ADMIN_API_URL.rstrip('/')}/api/clients/{client_id}/internal-db-info"
        try:
            response = requests.get(
                url,
                headers={"x-internal-api-key": settings.INTERNAL_ADMIN_API_KEY},
                timeout=settings.SUPER_ADMIN_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Error consultando SUPER-ADMIN para el tenant '{client_id}': {e}", exc_info=True)
            raise NotFoundError(f"No se pudo obtener la configuración del cliente '{client_id}'.")

        if response.status_code == 404:
            raise NotFoundError(f"Cliente '{client_id}' no encontrado.")
        if response.status_code != 200:
            logger.error(f"SUPER-ADMIN respondió {response.status_code} para el tenant '{client_id}'")
            raise NotFoundError(f"No se pudo obtener la configuración del cliente '{client_id}'.")

        data = response.json()
        if data.get("estadoSuscripcion") not in ACTIVE_SUBSCRIPTION_STATES:
            logger.warning(f"Tenant '{client_id}' con suscripción {data.get('estadoSuscripcion')}")
            raise AuthorizationError("La suscripción de este cliente no está activa.")

        connection_string = data.get("connectionStringDB")
        if not connection_string:
            raise NotFoundError(f"El cliente '{client_id}' no tiene base de datos configurada.")
        return _normalize_url(connection_string), data.get("apiSecretKey")


tenant_registry = TenantRegistry()

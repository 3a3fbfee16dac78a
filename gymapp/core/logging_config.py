"""
Logging de la aplicación. Cada línea lleva el tenant (X-Client-ID) que la
originó: el middleware HTTP y el runner de tareas programadas lo fijan con
``tenant_logging``; fuera de esos contextos aparece "-".
"""
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime

from gymapp.core.config import get_settings

current_tenant: ContextVar[str] = ContextVar("current_tenant", default="-")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | [%(tenant_id)s] | %(name)s:%(lineno)d | %(message)s"

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "apscheduler": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "urllib3": logging.WARNING,
}


class TenantFilter(logging.Filter):
    """Agrega ``tenant_id`` a cada registro."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = current_tenant.get()
        return True


@contextmanager
def tenant_logging(client_id: str):
    token = current_tenant.set(client_id or "-")
    try:
        yield
    finally:
        current_tenant.reset(token)


def setup_logging():
    settings = get_settings()
    level = logging.DEBUG if settings.DEBUG_MODE else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_TO_FILE:
        os.makedirs("logs", exist_ok=True)
        handlers.append(logging.FileHandler(f"logs/gymapp_{datetime.now():%Y%m%d}.log"))

    if root.hasHandlers():
        root.handlers.clear()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(TenantFilter())
        root.addHandler(handler)

    for name, logger_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)

    root.info("Logging listo (nivel %s, archivo %s)", logging.getLevelName(level),
              "sí" if settings.LOG_TO_FILE else "no")

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from functools import wraps
from typing import Callable
import logging
import time

import pytz

from gymapp.core.config import get_settings
from gymapp.core.logging_config import tenant_logging
from gymapp.db.tenant_registry import tenant_registry
from gymapp.services.scheduled_jobs import (
    run_class_reminders,
    run_free_pass_expiration_notices,
    run_monthly_class_generation,
    run_monthly_credit_reset,
    run_notification_cleanup,
)

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar operaciones en caso de errores de BD.

    Args:
        max_retries: Número máximo de reintentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff lineal: delay * (attempt + 1)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if attempt < max_retries - 1:
                        wait_time = delay * (attempt + 1)
                        logger.warning(
                            f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                            f"after {wait_time}s: {str(e)}"
                        )
                        time.sleep(wait_time)
                    else:
                        logger.error(
                            f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                            exc_info=True
                        )
                        raise
        return wrapper
    return decorator


def run_for_all_tenants(job_name: str, job: Callable) -> dict:
    """
    Ejecuta ``job(db)`` en cada tenant, uno tras otro. Un tenant que falla se
    registra y se salta; el resto sigue.

    Returns:
        Resultado por tenant (None si falló)
    """
    results = {}
    client_ids = tenant_registry.client_ids()
    logger.info(f"Running scheduled task: {job_name} ({len(client_ids)} tenants)")
    for client_id in client_ids:
        with tenant_logging(client_id):
            try:
                results[client_id] = _run_tenant_job(client_id, job)
                logger.info(f"{job_name}: {results[client_id]}")
            except Exception as e:
                results[client_id] = None
                logger.error(f"Error in {job_name}: {str(e)}", exc_info=True)
    return results


@retry_on_db_error(max_retries=3, delay=2)
def _run_tenant_job(client_id: str, job: Callable):
    tenant = tenant_registry.get(client_id)
    db = tenant.session_factory()
    try:
        return job(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def generate_monthly_classes():
    """Genera las clases fijas del mes siguiente en todos los tenants"""
    return run_for_all_tenants("generate_monthly_classes", run_monthly_class_generation)


def reset_monthly_credits():
    """Reinicio mensual de créditos y renovación de suscripciones"""
    return run_for_all_tenants("reset_monthly_credits", run_monthly_credit_reset)


def notify_free_pass_expiration():
    return run_for_all_tenants("notify_free_pass_expiration", run_free_pass_expiration_notices)


def cleanup_read_notifications():
    return run_for_all_tenants("cleanup_read_notifications", run_notification_cleanup)


def send_class_reminders():
    return run_for_all_tenants("send_class_reminders", run_class_reminders)


def init_scheduler():
    """
    Inicializa el programador de tareas
    """
    global _scheduler

    tz_name = get_settings().DEFAULT_GYM_TIMEZONE
    logger.info(f"Initializing scheduler with timezone {tz_name}")
    _scheduler = AsyncIOScheduler(timezone=pytz.timezone(tz_name))

    # Clases fijas del mes siguiente: día 1 a las 2 AM
    _scheduler.add_job(
        generate_monthly_classes,
        trigger=CronTrigger(day=1, hour=2, minute=0),
        id='monthly_class_generation',
        replace_existing=True
    )

    # Reinicio de créditos y renovación de suscripciones: día 1 a medianoche
    _scheduler.add_job(
        reset_monthly_credits,
        trigger=CronTrigger(day=1, hour=0, minute=0),
        id='monthly_credit_reset',
        replace_existing=True
    )

    _scheduler.add_job(
        notify_free_pass_expiration,
        trigger=CronTrigger(hour=9, minute=0),  # Diariamente a las 9 AM
        id='free_pass_expiration_notice',
        replace_existing=True
    )

    _scheduler.add_job(
        cleanup_read_notifications,
        trigger=CronTrigger(hour=3, minute=0),  # Diariamente a las 3 AM
        id='notification_cleanup',
        replace_existing=True
    )

    _scheduler.add_job(
        send_class_reminders,
        trigger=CronTrigger(minute=0),  # Cada hora en punto
        id='class_reminders',
        replace_existing=True
    )

    _scheduler.start()
    logger.info("Scheduler started")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None


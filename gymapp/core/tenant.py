import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.db.tenant_registry import TenantContext, tenant_registry
from gymapp.models.gym_settings import GymSettings

logger = logging.getLogger("tenant_verification")


async def get_tenant_id(
    x_client_id: Optional[str] = Header(None, alias="X-Client-ID")
) -> str:
    """
    Obtiene el ID del tenant (gimnasio) únicamente del header X-Client-ID.
    """
    if not x_client_id or not x_client_id.strip():
        logger.warning("Request sin header X-Client-ID")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Falta el header X-Client-ID."
        )
    return x_client_id.strip()


def get_tenant_context(client_id: str = Depends(get_tenant_id)) -> TenantContext:
    return tenant_registry.get(client_id)


def get_tenant_db(tenant: TenantContext = Depends(get_tenant_context)):
    """
    Sesión de la base de datos del tenant del request. Cualquier error no
    controlado revierte la transacción en curso.
    """
    db = tenant.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_gym_timezone(db: Session) -> str:
    gym_settings = db.query(GymSettings).first()
    if gym_settings and gym_settings.timezone:
        return gym_settings.timezone
    return get_settings().DEFAULT_GYM_TIMEZONE


def get_unenroll_cutoff_minutes(db: Session) -> int:
    gym_settings = db.query(GymSettings).first()
    if gym_settings and gym_settings.unenroll_cutoff_minutes is not None:
        return gym_settings.unenroll_cutoff_minutes
    return get_settings().UNENROLL_CUTOFF_MINUTES

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.db.base import Base
from gymapp.models.class_type import ClassType
from gymapp.models.gym_settings import GymSettings

logger = logging.getLogger(__name__)


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def initialize_tenant(db: Session) -> None:
    """
    Inicialización explícita de un tenant: provisiona el tipo de crédito
    universal y la fila de configuración del gimnasio. Idempotente.
    """
    settings = get_settings()

    universal = db.query(ClassType).filter(ClassType.is_universal.is_(True)).first()
    if universal is None:
        universal = ClassType(
            name=settings.UNIVERSAL_CLASS_TYPE_NAME,
            description="Crédito válido para inscribirse en cualquier clase.",
            price=0,
            reset_monthly=False,
            is_universal=True,
            total_credits=0,
        )
        db.add(universal)
        logger.info("Tipo de crédito universal creado")

    if db.query(GymSettings).first() is None:
        db.add(GymSettings(timezone=settings.DEFAULT_GYM_TIMEZONE))
        logger.info(f"Configuración del gimnasio creada con zona horaria {settings.DEFAULT_GYM_TIMEZONE}")

    db.commit()


def init_tenant_db(engine: Engine, session_factory) -> None:
    create_tables(engine)
    db = session_factory()
    try:
        initialize_tenant(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

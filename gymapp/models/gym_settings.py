from sqlalchemy import Column, Integer, String, Date, DateTime
from sqlalchemy.sql import func

from gymapp.db.base_class import Base


class GymSettings(Base):
    """Configuración del gimnasio (una sola fila por base de datos de tenant)"""
    __tablename__ = "gym_settings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=True)
    timezone = Column(String(64), nullable=False, default="America/Argentina/Buenos_Aires")
    unenroll_cutoff_minutes = Column(Integer, nullable=True)

    # Marcadores de última ejecución de tareas programadas
    last_credit_reset_month = Column(String(7), nullable=True)  # "YYYY-MM"
    last_class_generation_month = Column(String(7), nullable=True)
    last_free_pass_notice_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

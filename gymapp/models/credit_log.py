from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from gymapp.db.base_class import Base


class CreditLogReason(str, enum.Enum):
    AJUSTE_MANUAL_ADMIN = "ajuste_manual_admin"
    INSCRIPCION_CLASE = "inscripcion_clase"
    REEMBOLSO_ANULACION = "reembolso_anulacion"
    COMPRA_PACK = "compra_pack"
    RENOVACION_SUSCRIPCION = "renovacion_suscripcion"
    REEMBOLSO_CANCELACION_ADMIN = "reembolso_cancelacion_admin"
    INICIALIZACION = "inicializacion"


class CreditLog(Base):
    """Registro de auditoría de cada movimiento de créditos"""
    __tablename__ = "credit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Integer, nullable=False)
    class_type_id = Column(Integer, ForeignKey("class_types.id", ondelete="SET NULL"), nullable=True)
    new_balance = Column(Integer, nullable=False)
    reason = Column(Enum(CreditLogReason), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", foreign_keys=[user_id])
    admin = relationship("User", foreign_keys=[admin_id])
    class_type = relationship("ClassType")

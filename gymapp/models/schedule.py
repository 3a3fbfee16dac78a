from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Enum, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from gymapp.db.base_class import Base


class ClassInstanceStatus(str, enum.Enum):
    ACTIVA = "activa"
    LLENA = "llena"
    CANCELADA = "cancelada"


class EnrollmentKind(str, enum.Enum):
    LIBRE = "libre"  # turno suelto
    FIJO = "fijo"  # generado por una regla de recurrencia


class ClassInstance(Base):
    """
    Turno concreto de una clase en un día. La fecha se guarda a las 12:00 UTC
    (naive) para que ninguna conversión de zona horaria cambie el día.
    """
    __tablename__ = "class_instances"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False, default="Turno")
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=True, index=True)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    date = Column(DateTime, nullable=False, index=True)
    weekdays = Column(JSON, nullable=False, default=list)
    enrollment_kind = Column(Enum(EnrollmentKind), nullable=False, default=EnrollmentKind.LIBRE)
    # Compartida por todos los turnos generados desde la misma definición
    recurrence_rule = Column(String(500), nullable=True, index=True)
    status = Column(Enum(ClassInstanceStatus), nullable=False, default=ClassInstanceStatus.ACTIVA)
    teacher_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    class_type = relationship("ClassType", back_populates="instances")
    teacher = relationship("User", foreign_keys=[teacher_id])
    enrollments = relationship(
        "ClassEnrollment",
        back_populates="class_instance",
        cascade="all, delete-orphan",
        order_by="ClassEnrollment.id",
    )
    waitlist = relationship(
        "ClassWaitlistEntry",
        back_populates="class_instance",
        cascade="all, delete-orphan",
        order_by="ClassWaitlistEntry.id",
    )

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_capacity_non_negative"),
        Index("ix_class_instances_family", "name", "class_type_id", "start_time"),
    )

    @property
    def enrolled_user_ids(self):
        return [e.user_id for e in self.enrollments]

    @property
    def waitlist_user_ids(self):
        return [w.user_id for w in self.waitlist]

    @property
    def enrollment_details(self):
        """Pares usuario/tipo de crédito debitado (sólo inscripciones que consumieron crédito)"""
        return [
            {"user_id": e.user_id, "credit_type_id": e.credit_type_id}
            for e in self.enrollments
            if e.credit_type_id is not None
        ]


class ClassEnrollment(Base):
    """Inscripción de un usuario a un turno y el tipo de crédito que se debitó"""
    __tablename__ = "class_enrollments"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Tipo debitado; nulo si no se consumió crédito o en inscripciones migradas
    credit_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=True)
    # True si la inscripción no consumió crédito (pase libre, plan fijo o alta sin cargo)
    credit_exempt = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    class_instance = relationship("ClassInstance", back_populates="enrollments")
    user = relationship("User", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("class_id", "user_id", name="uq_enrollment_class_user"),
    )


class ClassWaitlistEntry(Base):
    __tablename__ = "class_waitlist"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    class_instance = relationship("ClassInstance", back_populates="waitlist")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("class_id", "user_id", name="uq_waitlist_class_user"),
    )

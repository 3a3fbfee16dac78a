from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Date, Enum, JSON,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from gymapp.db.base_class import Base


class UserRole(str, enum.Enum):
    CLIENTE = "cliente"
    ADMIN = "admin"
    PROFESOR = "profesor"


class SubscriptionStatus(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATICA = "automatica"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    roles = Column(JSON, nullable=False, default=lambda: [UserRole.CLIENTE.value])
    is_active = Column(Boolean, default=True)

    # Pase libre: no consume créditos entre ambas fechas (inclusive)
    free_pass_from = Column(Date, nullable=True)
    free_pass_until = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    credits = relationship("UserCredit", back_populates="user", cascade="all, delete-orphan")
    fixed_plans = relationship(
        "FixedPlan", back_populates="user", cascade="all, delete-orphan", order_by="FixedPlan.id"
    )
    subscriptions = relationship(
        "MonthlySubscription", back_populates="user", cascade="all, delete-orphan"
    )
    enrollments = relationship("ClassEnrollment", back_populates="user")

    @property
    def enrolled_class_ids(self):
        return [enrollment.class_id for enrollment in self.enrollments]

    def has_role(self, *roles) -> bool:
        wanted = {r.value if isinstance(r, UserRole) else r for r in roles}
        return bool(wanted.intersection(self.roles or []))


class UserCredit(Base):
    """Saldo de créditos de un usuario para un tipo de clase"""
    __tablename__ = "user_credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=False, index=True)
    # Puede quedar negativo tras un ajuste manual; la inscripción nunca lo deja negativo
    balance = Column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="credits")
    class_type = relationship("ClassType")

    __table_args__ = (
        UniqueConstraint("user_id", "class_type_id", name="uq_user_credit_type"),
    )


class FixedPlan(Base):
    """Plan fijo: inscripción recurrente de un usuario a un patrón semanal"""
    __tablename__ = "fixed_plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=False)
    weekdays = Column(JSON, nullable=False, default=list)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="fixed_plans")
    class_type = relationship("ClassType")


class MonthlySubscription(Base):
    __tablename__ = "monthly_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_type_id = Column(Integer, ForeignKey("class_types.id"), nullable=False)
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.MANUAL)
    auto_renew_amount = Column(Integer, nullable=False, default=8)
    last_renewal_date = Column(DateTime, nullable=True)  # UTC naive

    user = relationship("User", back_populates="subscriptions")
    class_type = relationship("ClassType")

    __table_args__ = (
        UniqueConstraint("user_id", "class_type_id", name="uq_user_subscription_type"),
        CheckConstraint("auto_renew_amount >= 0", name="check_auto_renew_non_negative"),
    )

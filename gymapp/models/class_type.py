from sqlalchemy import Column, Integer, String, Boolean, Text, Float, DateTime, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from gymapp.db.base_class import Base


class ClassType(Base):
    """
    Tipo de clase (Funcional, Yoga, ...). Cada tipo tiene su propio saldo de créditos
    por usuario. El tipo universal sirve para pagar cualquier clase.
    """
    __tablename__ = "class_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0)
    reset_monthly = Column(Boolean, nullable=False, default=False)
    is_universal = Column(Boolean, nullable=False, default=False)

    # Suma de capacidades de todos los turnos creados de este tipo
    total_credits = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    instances = relationship("ClassInstance", back_populates="class_type")

    __table_args__ = (
        # A lo sumo un tipo universal por tenant
        Index(
            "ix_class_types_single_universal",
            "is_universal",
            unique=True,
            postgresql_where=text("is_universal"),
            sqlite_where=text("is_universal = 1"),
        ),
    )

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text
from sqlalchemy.sql import func

from gymapp.db.base_class import Base


class Notification(Base):
    """Notificación in-app persistida antes del envío push"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False, default="general")
    is_important = Column(Boolean, nullable=False, default=False)
    is_read = Column(Boolean, nullable=False, default=False)
    # Sin FK: el turno puede eliminarse y la notificación se conserva
    related_class_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    read_at = Column(DateTime, nullable=True)

from typing import List, Optional
from datetime import datetime

from sqlalchemy.orm import Session

from gymapp.models.notification import Notification
from gymapp.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification, dict, dict]):
    def get_by_user(
        self, db: Session, *, user_id: int, unread_only: bool = False, skip: int = 0, limit: int = 50
    ) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_for_user(self, db: Session, *, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )

    def exists_for_class(self, db: Session, *, user_id: int, class_id: int, type: str) -> bool:
        query = db.query(Notification.id).filter(
            Notification.user_id == user_id,
            Notification.related_class_id == class_id,
            Notification.type == type,
        )
        return db.query(query.exists()).scalar()

    def delete_read_older_than(self, db: Session, *, cutoff: datetime) -> int:
        deleted = (
            db.query(Notification)
            .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted


notification_repository = NotificationRepository(Notification)

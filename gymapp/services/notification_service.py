import requests
import logging
import json
from typing import List, Dict, Any, Optional, Iterable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.core.exceptions import NotFoundError
from gymapp.core.timezone_utils import utc_now_naive
from gymapp.models.notification import Notification
from gymapp.repositories.notification_repository import notification_repository

logger = logging.getLogger(__name__)


class OneSignalService:
    def __init__(self, app_id: Optional[str], api_key: Optional[str]):
        self.app_id = app_id
        self.api_key = api_key
        self.base_url = "https://onesignal.com/api/v1/notifications"
        self.headers = {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json; charset=utf-8"
        }
        if not app_id or not api_key:
            logger.warning("OneSignal no configurado - las notificaciones push estarán deshabilitadas")

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.api_key)

    def send_to_users(
        self,
        user_ids: List[str],
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Envía notificación push a múltiples usuarios por su user_id externo.

        Returns:
            Diccionario con resultado del envío
        """
        if not user_ids:
            return {"success": False, "errors": ["No user IDs provided"]}
        if not self.enabled:
            return {"success": False, "errors": ["OneSignal no configurado"]}

        payload = {
            "app_id": self.app_id,
            "include_external_user_ids": user_ids,
            "channel_for_external_user_ids": "push",
            "headings": {"en": title, "es": title},
            "contents": {"en": message, "es": message},
            "data": data or {}
        }

        logger.info(f"Sending notification to {len(user_ids)} users: {title}")
        response = requests.post(self.base_url, headers=self.headers, data=json.dumps(payload), timeout=10)
        logger.debug(f"OneSignal response: {response.status_code} - {response.text}")

        if response.status_code == 200:
            result = response.json()
            return {
                "success": True,
                "notification_id": result.get("id"),
                "recipients": result.get("recipients"),
            }
        error_msg = f"OneSignal error: {response.status_code} - {response.text}"
        logger.error(error_msg)
        return {"success": False, "errors": [error_msg]}


class NotificationDispatch:
    """
    Notificaciones a usuarios: guarda la notificación in-app y luego intenta
    el envío push. Nunca lanza excepciones; la operación que la disparó ya
    está confirmada.
    """

    def __init__(self, push_service: OneSignalService):
        self.push_service = push_service

    def send_single_notification(
        self,
        db: Session,
        user_id: int,
        title: str,
        message: str,
        type: str = "general",
        is_important: bool = False,
        related_class_id: Optional[int] = None
    ) -> Optional[Notification]:
        notification = None
        try:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                is_important=is_important,
                related_class_id=related_class_id,
            )
            db.add(notification)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Error guardando notificación para el usuario {user_id}: {e}", exc_info=True)
            return None

        try:
            data = {"type": type, "notification_id": notification.id}
            if related_class_id is not None:
                data["class_id"] = related_class_id
            self.push_service.send_to_users([str(user_id)], title, message, data=data)
        except Exception as e:
            logger.error(f"Error enviando push al usuario {user_id}: {e}", exc_info=True)
        return notification

    def send_to_many(
        self,
        db: Session,
        user_ids: Iterable[int],
        title: str,
        message: str,
        type: str = "general",
        is_important: bool = False,
        related_class_id: Optional[int] = None
    ) -> int:
        """Una notificación por usuario (sin repetir). Devuelve cuántas se guardaron."""
        sent = 0
        for user_id in dict.fromkeys(user_ids):
            if self.send_single_notification(
                db, user_id, title, message, type=type,
                is_important=is_important, related_class_id=related_class_id
            ) is not None:
                sent += 1
        return sent

    def get_user_notifications(self, db: Session, user_id: int, unread_only: bool = False,
                               skip: int = 0, limit: int = 50) -> List[Notification]:
        return notification_repository.get_by_user(
            db, user_id=user_id, unread_only=unread_only, skip=skip, limit=limit
        )

    def mark_as_read(self, db: Session, notification_id: int, user_id: int) -> Notification:
        notification = notification_repository.get_for_user(db, notification_id=notification_id, user_id=user_id)
        if notification is None:
            raise NotFoundError("Notificación no encontrada.")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now_naive()
            db.commit()
            db.refresh(notification)
        return notification

    def cleanup_read_notifications(self, db: Session, retention_days: int, now: Optional[datetime] = None) -> int:
        cutoff = (now or utc_now_naive()) - timedelta(days=retention_days)
        deleted = notification_repository.delete_read_older_than(db, cutoff=cutoff)
        logger.info(f"Notificaciones leídas eliminadas (anteriores a {cutoff:%Y-%m-%d}): {deleted}")
        return deleted


_settings = get_settings()

# Instancias globales
push_service = OneSignalService(
    app_id=_settings.ONESIGNAL_APP_ID,
    api_key=_settings.ONESIGNAL_REST_API_KEY
)
notification_service = NotificationDispatch(push_service)

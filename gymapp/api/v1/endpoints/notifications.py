from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from typing import List

from gymapp.core.auth import get_current_user
from gymapp.core.tenant import get_tenant_db
from gymapp.models.user import User
from gymapp.schemas.notification import Notification
from gymapp.services.notification_service import notification_service


router = APIRouter()

@router.get("", response_model=List[Notification])
async def get_my_notifications(
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user),
):
    """
    Obtiene las notificaciones del usuario actual, de la más reciente a la más antigua
    """
    return notification_service.get_user_notifications(
        db, current_user.id, unread_only=unread_only, skip=skip, limit=limit
    )

@router.put("/{notification_id}/read", response_model=Notification)
async def mark_notification_as_read(
    notification_id: int = Path(...),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user),
):
    """
    Marca una notificación propia como leída
    """
    return notification_service.mark_as_read(db, notification_id, current_user.id)

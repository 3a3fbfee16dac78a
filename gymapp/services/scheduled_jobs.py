"""
Tareas programadas de un tenant. Cada función recibe la sesión del tenant y
es idempotente: los marcadores de ``gym_settings`` evitan repetir una
ejecución del mismo mes o día, y los recordatorios no se repiten por clase.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.core.tenant import get_gym_timezone
from gymapp.core.timezone_utils import convert_utc_to_local, gym_today, utc_now_naive
from gymapp.models.gym_settings import GymSettings
from gymapp.models.schedule import ClassInstanceStatus
from gymapp.repositories.notification_repository import notification_repository
from gymapp.repositories.schedule import class_instance_repository
from gymapp.repositories.user import user_repository
from gymapp.services.bulk_schedule import bulk_schedule_service
from gymapp.services.credit_ledger import credit_ledger
from gymapp.services.notification_service import notification_service

logger = logging.getLogger(__name__)


def _gym_settings(db: Session) -> GymSettings:
    gym_settings = db.query(GymSettings).first()
    if gym_settings is None:
        gym_settings = GymSettings(timezone=get_settings().DEFAULT_GYM_TIMEZONE)
        db.add(gym_settings)
        db.flush()
    return gym_settings


def _month_key(value) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def run_monthly_class_generation(db: Session, today: Optional[date] = None) -> int:
    """Genera las clases fijas del mes siguiente si todavía no se generaron."""
    today = today or gym_today(get_gym_timezone(db))
    next_month = (today.replace(day=28) + timedelta(days=4)).replace(day=1)
    gym_settings = _gym_settings(db)
    if gym_settings.last_class_generation_month == _month_key(next_month):
        logger.info(f"Clases de {_month_key(next_month)} ya generadas, nada que hacer")
        return 0
    return bulk_schedule_service.generate_future_fixed_classes(db, today=today)


def run_monthly_credit_reset(db: Session, now: Optional[datetime] = None) -> int:
    """
    Reinicio mensual: borra los saldos de los tipos con reinicio mensual y
    luego renueva las suscripciones automáticas, avisando a cada usuario
    renovado. El reinicio se hace una sola vez por mes; la renovación se
    protege sola con ``last_renewal_date``.

    Returns:
        Número de suscripciones renovadas
    """
    now = now or utc_now_naive()
    month_key = _month_key(now)
    gym_settings = _gym_settings(db)

    if gym_settings.last_credit_reset_month != month_key:
        removed = credit_ledger.reset_monthly_credits(db)
        gym_settings.last_credit_reset_month = month_key
        logger.info(f"Reinicio mensual {month_key}: {removed} saldos eliminados")

    renewed = credit_ledger.renew_subscriptions(db, now=now)
    reminders = [
        (subscription.user_id, subscription.auto_renew_amount, subscription.class_type.name)
        for subscription in renewed
        if subscription.auto_renew_amount > 0
    ]
    db.commit()
    logger.info(f"Renovación de suscripciones {month_key}: {len(renewed)} renovadas")

    for user_id, amount, class_type_name in reminders:
        notification_service.send_single_notification(
            db,
            user_id,
            "Recordatorio de pago",
            f"Recordatorio de pago: Se ha acreditado {amount} créditos para \"{class_type_name}\" "
            f"correspondientes a tu suscripción mensual. Recordá abonar la cuota del mes.",
            type="monthly_payment_reminder",
            is_important=True,
        )
    return len(renewed)


def run_free_pass_expiration_notices(db: Session, today: Optional[date] = None) -> int:
    """Avisa a los usuarios cuyo pase libre vence mañana. Una vez por día."""
    today = today or gym_today(get_gym_timezone(db))
    gym_settings = _gym_settings(db)
    if gym_settings.last_free_pass_notice_date == today:
        return 0

    tomorrow = today + timedelta(days=1)
    user_ids = [user.id for user in user_repository.get_with_free_pass_ending(db, day=tomorrow)]
    gym_settings.last_free_pass_notice_date = today
    db.commit()

    sent = notification_service.send_to_many(
        db,
        user_ids,
        "Tu pase libre vence mañana",
        f"Tu pase libre vence el {tomorrow:%d/%m/%Y}. A partir de esa fecha las clases consumirán créditos.",
        type="free_pass_expiration",
        is_important=True,
    )
    logger.info(f"Avisos de vencimiento de pase libre enviados: {sent}")
    return sent


def run_notification_cleanup(db: Session, now: Optional[datetime] = None) -> int:
    return notification_service.cleanup_read_notifications(
        db, retention_days=get_settings().NOTIFICATION_RETENTION_DAYS, now=now
    )


CLASS_REMINDER_TYPE = "class_reminder_2hr"


def run_class_reminders(db: Session, now: Optional[datetime] = None) -> int:
    """
    Recordatorio a los inscritos en las clases que empiezan dentro de la hora
    local que cae ``CLASS_REMINDER_HOURS_AHEAD`` horas después de ``now``.
    Cada usuario recibe un solo recordatorio por clase.
    """
    now = now or datetime.now(timezone.utc)
    hours_ahead = get_settings().CLASS_REMINDER_HOURS_AHEAD
    target = convert_utc_to_local(now + timedelta(hours=hours_ahead), get_gym_timezone(db))
    hour_prefix = f"{target.hour:02d}:"

    instances = class_instance_repository.get_by_day_and_status(
        db, day=target.date(), statuses=[ClassInstanceStatus.ACTIVA, ClassInstanceStatus.LLENA]
    )
    pending = []
    for instance in instances:
        if not instance.start_time.startswith(hour_prefix):
            continue
        class_name = instance.name or (instance.class_type.name if instance.class_type else "tu clase")
        message = f"Recordatorio: tu turno de \"{class_name}\" comienza a las {instance.start_time}hs."
        for user_id in instance.enrolled_user_ids:
            if notification_repository.exists_for_class(
                db, user_id=user_id, class_id=instance.id, type=CLASS_REMINDER_TYPE
            ):
                continue
            pending.append((user_id, message, instance.id))

    sent = 0
    for user_id, message, class_id in pending:
        if notification_service.send_single_notification(
            db, user_id, "¡Tu turno es pronto!", message,
            type=CLASS_REMINDER_TYPE, is_important=True, related_class_id=class_id
        ) is not None:
            sent += 1
    logger.info(f"Recordatorios de clase enviados: {sent}")
    return sent

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from gymapp.core.exceptions import NotFoundError, StateConflictError, ValidationError
from gymapp.core.timezone_utils import format_class_moment, to_class_date
from gymapp.models.class_type import ClassType
from gymapp.models.credit_log import CreditLogReason
from gymapp.models.schedule import ClassInstance, ClassInstanceStatus, EnrollmentKind
from gymapp.models.user import User
from gymapp.repositories.class_type import class_type_repository
from gymapp.repositories.schedule import class_instance_repository
from gymapp.schemas.schedule import ClassInstanceCreate, ClassInstanceUpdate
from gymapp.services import recurrence
from gymapp.services.credit_ledger import credit_ledger
from gymapp.services.notification_service import notification_service

logger = logging.getLogger(__name__)

# (user_id, título, mensaje, related_class_id)
PendingNotification = Tuple[int, str, str, Optional[int]]


def sync_capacity_status(instance: ClassInstance) -> None:
    """activa <-> llena según la ocupación; cancelada no cambia."""
    if instance.status == ClassInstanceStatus.CANCELADA:
        return
    if len(instance.enrollments) >= instance.capacity:
        instance.status = ClassInstanceStatus.LLENA
    else:
        instance.status = ClassInstanceStatus.ACTIVA


def dispatch_notifications(db: Session, pending: List[PendingNotification], type: str, is_important: bool = False) -> int:
    sent = 0
    for user_id, title, message, class_id in pending:
        if notification_service.send_single_notification(
            db, user_id, title, message, type=type, is_important=is_important, related_class_id=class_id
        ) is not None:
            sent += 1
    return sent


class ClassInstanceService:

    def get_instance(self, db: Session, class_id: int) -> ClassInstance:
        instance = class_instance_repository.get(db, id=class_id)
        if not instance:
            raise NotFoundError("Clase no encontrada.")
        return instance

    def get_instance_for_update(self, db: Session, class_id: int) -> ClassInstance:
        instance = class_instance_repository.get_for_update(db, class_id)
        if not instance:
            raise NotFoundError("Clase no encontrada.")
        return instance

    def get_instances(
        self,
        db: Session,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        class_type_id: Optional[int] = None,
        status: Optional[ClassInstanceStatus] = None,
        skip: int = 0,
        limit: int = 500
    ) -> List[ClassInstance]:
        return class_instance_repository.get_filtered(
            db, start_date=start_date, end_date=end_date, class_type_id=class_type_id,
            status=status, skip=skip, limit=limit
        )

    def get_bookable_class_type(self, db: Session, class_type_id: int) -> ClassType:
        class_type = class_type_repository.get(db, id=class_type_id)
        if not class_type:
            raise NotFoundError("Tipo de clase no encontrado.")
        if class_type.is_universal:
            raise ValidationError("El crédito universal no es un tipo de clase; elegí un tipo concreto.")
        return class_type

    def _check_teacher(self, db: Session, teacher_id: Optional[int]) -> None:
        if teacher_id is not None and db.get(User, teacher_id) is None:
            raise NotFoundError("Profesor no encontrado.")

    def create_classes(self, db: Session, data: ClassInstanceCreate) -> List[ClassInstance]:
        if data.enrollment_kind == EnrollmentKind.FIJO:
            return self.create_recurring_batch(db, data)
        return [self.create_single(db, data)]

    def create_single(self, db: Session, data: ClassInstanceCreate) -> ClassInstance:
        if data.date is None:
            raise ValidationError("La fecha es obligatoria para una clase única.")
        class_type = self.get_bookable_class_type(db, data.class_type_id)
        self._check_teacher(db, data.teacher_id)

        class_date = to_class_date(data.date)
        instance = ClassInstance(
            name=data.name,
            class_type_id=class_type.id,
            start_time=data.start_time,
            end_time=data.end_time,
            capacity=data.capacity,
            date=class_date,
            weekdays=[recurrence.weekday_label(class_date)],
            enrollment_kind=EnrollmentKind.LIBRE,
            status=ClassInstanceStatus.ACTIVA,
            teacher_id=data.teacher_id,
        )
        sync_capacity_status(instance)
        db.add(instance)
        class_type_repository.adjust_total_credits(db, class_type, data.capacity)
        db.commit()
        db.refresh(instance)
        logger.info(f"Clase única creada: {instance.id} '{instance.name}' {class_date:%Y-%m-%d} {instance.start_time}")
        return instance

    def create_recurring_batch(self, db: Session, data: ClassInstanceCreate) -> List[ClassInstance]:
        if not data.weekdays or data.start_date is None or data.end_date is None:
            raise ValidationError(
                "Para clases fijas, se requieren fechas de inicio, fin y al menos un día de la semana."
            )
        weekdays = recurrence.normalize_weekdays(data.weekdays)
        dates = recurrence.expand(weekdays, data.start_date, data.end_date)
        if not dates:
            raise ValidationError(
                "La configuración no generó ninguna clase. Revisa las fechas y los días seleccionados."
            )
        class_type = self.get_bookable_class_type(db, data.class_type_id)
        self._check_teacher(db, data.teacher_id)

        token = recurrence.rule_token(weekdays, data.start_date, data.end_date)
        instances = [
            ClassInstance(
                name=data.name,
                class_type_id=class_type.id,
                start_time=data.start_time,
                end_time=data.end_time,
                capacity=data.capacity,
                date=class_date,
                weekdays=[recurrence.weekday_label(class_date)],
                enrollment_kind=EnrollmentKind.FIJO,
                recurrence_rule=token,
                status=ClassInstanceStatus.ACTIVA,
                teacher_id=data.teacher_id,
            )
            for class_date in dates
        ]
        for instance in instances:
            sync_capacity_status(instance)
        db.add_all(instances)
        class_type_repository.adjust_total_credits(db, class_type, data.capacity * len(instances))
        db.commit()
        for instance in instances:
            db.refresh(instance)
        logger.info(
            f"Serie fija creada: {len(instances)} clases '{data.name}' ({', '.join(weekdays)}) "
            f"{data.start_date} a {data.end_date}"
        )
        return instances

    def update_instance(self, db: Session, class_id: int, data: ClassInstanceUpdate) -> ClassInstance:
        """
        Actualización parcial. Un cambio de capacidad ajusta los créditos
        totales del tipo; un cambio de fecha u hora de inicio con inscritos
        les avisa a todos.
        """
        instance = self.get_instance_for_update(db, class_id)
        update_data = data.model_dump(exclude_unset=True)

        start_time = update_data.get("start_time", instance.start_time)
        end_time = update_data.get("end_time", instance.end_time)
        if end_time <= start_time:
            raise ValidationError("La hora de fin debe ser posterior a la hora de inicio.")

        new_capacity = update_data.get("capacity", instance.capacity)
        if new_capacity is None:
            raise ValidationError("La capacidad es obligatoria.")
        if new_capacity < len(instance.enrollments):
            raise ValidationError(
                f"La capacidad no puede ser menor que la cantidad de inscritos ({len(instance.enrollments)})."
            )

        new_type_id = update_data.get("class_type_id", instance.class_type_id)
        new_type = self.get_bookable_class_type(db, new_type_id) if new_type_id is not None else None
        if "teacher_id" in update_data:
            self._check_teacher(db, update_data["teacher_id"])

        old_moment = format_class_moment(instance.date, instance.start_time)
        schedule_changed = False

        # Ajuste de créditos totales de los tipos involucrados
        old_type = instance.class_type
        if new_type is not None and (old_type is None or old_type.id != new_type.id):
            if old_type is not None:
                class_type_repository.adjust_total_credits(db, old_type, -instance.capacity)
            class_type_repository.adjust_total_credits(db, new_type, new_capacity)
        elif new_type is not None:
            class_type_repository.adjust_total_credits(db, new_type, new_capacity - instance.capacity)

        if "date" in update_data and update_data["date"] is not None:
            new_date = to_class_date(update_data["date"])
            if new_date != instance.date:
                instance.date = new_date
                instance.weekdays = [recurrence.weekday_label(new_date)]
                schedule_changed = True
        if start_time != instance.start_time:
            schedule_changed = True

        if "name" in update_data and update_data["name"]:
            instance.name = update_data["name"]
        if "teacher_id" in update_data:
            instance.teacher_id = update_data["teacher_id"]
        instance.start_time = start_time
        instance.end_time = end_time
        instance.capacity = new_capacity
        instance.class_type_id = new_type_id
        sync_capacity_status(instance)

        pending: List[PendingNotification] = []
        if schedule_changed:
            new_moment = format_class_moment(instance.date, instance.start_time)
            for enrollment in instance.enrollments:
                pending.append((
                    enrollment.user_id,
                    "Cambio de horario",
                    f"La clase '{instance.name}' del {old_moment} fue reprogramada para el {new_moment}.",
                    instance.id,
                ))

        db.commit()
        db.refresh(instance)
        logger.info(f"Clase {instance.id} actualizada: {sorted(update_data.keys())}")
        dispatch_notifications(db, pending, type="clase_modificada", is_important=True)
        return instance

    def _refund_and_clear(
        self, db: Session, instance: ClassInstance, refund_credits: bool, admin_id: Optional[int]
    ) -> Tuple[List[Tuple[int, Optional[int]]], int]:
        """
        Reembolsa (si corresponde) a cada inscrito y vacía la lista de
        inscripciones. Devuelve [(user_id, tipo_reembolsado)] y la cantidad de
        créditos devueltos.
        """
        affected = []
        refunded = 0
        for enrollment in list(instance.enrollments):
            refunded_type = None
            if refund_credits:
                refunded_type = credit_ledger.refund_enrollment(
                    db, enrollment.user, instance, enrollment,
                    CreditLogReason.REEMBOLSO_CANCELACION_ADMIN, admin_id=admin_id
                )
                if refunded_type is not None:
                    refunded += 1
            affected.append((enrollment.user_id, refunded_type))
        instance.enrollments.clear()
        return affected, refunded

    def cancel_instance(
        self, db: Session, class_id: int, refund_credits: bool = True, admin_id: Optional[int] = None
    ) -> Dict[str, Any]:
        instance = self.get_instance_for_update(db, class_id)
        if instance.status == ClassInstanceStatus.CANCELADA:
            raise StateConflictError("La clase ya ha sido cancelada.")

        affected, refunded = self._refund_and_clear(db, instance, refund_credits, admin_id)
        instance.status = ClassInstanceStatus.CANCELADA

        moment = format_class_moment(instance.date, instance.start_time)
        pending: List[PendingNotification] = []
        for user_id, refunded_type in affected:
            if refunded_type is not None:
                message = (
                    f"La clase '{instance.name}' del {moment} fue cancelada. "
                    f"Se te ha reembolsado 1 crédito."
                )
            else:
                message = f"La clase '{instance.name}' del {moment} fue cancelada."
            pending.append((user_id, "Clase cancelada", message, instance.id))

        db.commit()
        db.refresh(instance)
        logger.info(
            f"Clase {instance.id} cancelada por admin {admin_id}: {len(affected)} inscritos, "
            f"{refunded} créditos reembolsados"
        )
        notified = dispatch_notifications(db, pending, type="clase_cancelada", is_important=True)
        return {
            "message": "Clase cancelada exitosamente.",
            "class_instance": instance,
            "refunded_credits": refunded,
            "notified_users": notified,
        }

    def reactivate_instance(self, db: Session, class_id: int) -> ClassInstance:
        """
        cancelada -> activa. Las inscripciones anteriores no se restauran.
        """
        instance = self.get_instance_for_update(db, class_id)
        if instance.status != ClassInstanceStatus.CANCELADA:
            raise StateConflictError("La clase ya está activa o llena.")
        instance.status = ClassInstanceStatus.ACTIVA
        sync_capacity_status(instance)
        db.commit()
        db.refresh(instance)
        logger.info(f"Clase {instance.id} reactivada")
        return instance

    def delete_instance(self, db: Session, class_id: int, admin_id: Optional[int] = None) -> Dict[str, Any]:
        instance = self.get_instance_for_update(db, class_id)
        affected, refunded = self._refund_and_clear(db, instance, True, admin_id)

        if instance.class_type is not None:
            class_type_repository.adjust_total_credits(db, instance.class_type, -instance.capacity)

        moment = format_class_moment(instance.date, instance.start_time)
        pending: List[PendingNotification] = []
        for user_id, refunded_type in affected:
            suffix = " Se te ha reembolsado 1 crédito." if refunded_type is not None else ""
            pending.append((
                user_id,
                "Clase eliminada",
                f"La clase '{instance.name}' del {moment} fue eliminada.{suffix}",
                None,
            ))

        deleted_id = instance.id
        db.delete(instance)
        db.commit()
        logger.info(f"Clase {deleted_id} eliminada por admin {admin_id}: {refunded} créditos reembolsados")
        notified = dispatch_notifications(db, pending, type="clase_eliminada", is_important=True)
        return {
            "message": "Clase eliminada correctamente.",
            "deleted_id": deleted_id,
            "refunded_credits": refunded,
            "notified_users": notified,
        }

    def cancel_by_date(
        self, db: Session, day: date, refund_credits: bool = True, admin_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Cancela las clases activas del día; las llenas quedan como están. Cada
        usuario afectado recibe una sola notificación aunque estuviera en varias clases.
        """
        instances = class_instance_repository.get_by_day_and_status(
            db, day=day, statuses=[ClassInstanceStatus.ACTIVA]
        )
        if not instances:
            raise NotFoundError("No se encontraron clases activas para cancelar en esa fecha.")

        refunded_total = 0
        refunds_by_user: Dict[int, int] = {}
        for instance in instances:
            affected, refunded = self._refund_and_clear(db, instance, refund_credits, admin_id)
            refunded_total += refunded
            instance.status = ClassInstanceStatus.CANCELADA
            for user_id, refunded_type in affected:
                refunds_by_user.setdefault(user_id, 0)
                if refunded_type is not None:
                    refunds_by_user[user_id] += 1

        db.commit()
        logger.info(
            f"Cancelación del día {day}: {len(instances)} clases, {len(refunds_by_user)} usuarios, "
            f"{refunded_total} créditos reembolsados (admin {admin_id})"
        )

        pending: List[PendingNotification] = []
        for user_id, count in refunds_by_user.items():
            message = f"Atención: las clases del día {day:%d/%m/%Y} han sido canceladas."
            if count:
                message += f" Se te reembolsaron {count} crédito(s)."
            else:
                message += " Por favor busca un nuevo horario."
            pending.append((user_id, "Clases canceladas", message, None))
        notified = dispatch_notifications(db, pending, type="clases_canceladas_dia", is_important=True)

        return {
            "message": f"Se cancelaron {len(instances)} clases y se notificó a {notified} usuarios.",
            "affected_classes": len(instances),
            "refunded_credits": refunded_total,
            "notified_users": notified,
        }

    def reactivate_by_date(self, db: Session, day: date) -> Dict[str, Any]:
        instances = class_instance_repository.get_by_day_and_status(
            db, day=day, statuses=[ClassInstanceStatus.CANCELADA]
        )
        if not instances:
            raise NotFoundError("No se encontraron clases canceladas para reactivar en esa fecha.")
        for instance in instances:
            instance.status = ClassInstanceStatus.ACTIVA
            sync_capacity_status(instance)
        db.commit()
        logger.info(f"Reactivación del día {day}: {len(instances)} clases")
        return {
            "message": f"Se reactivaron {len(instances)} clases.",
            "affected_classes": len(instances),
        }


class_instance_service = ClassInstanceService()

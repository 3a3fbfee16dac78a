import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gymapp.core.exceptions import ConsistencyError, NotFoundError, StateConflictError, ValidationError
from gymapp.core.tenant import get_gym_timezone, get_unenroll_cutoff_minutes
from gymapp.core.timezone_utils import class_start_instant, convert_utc_to_local, format_class_moment
from gymapp.models.credit_log import CreditLogReason
from gymapp.models.schedule import ClassEnrollment, ClassInstance, ClassInstanceStatus, ClassWaitlistEntry
from gymapp.models.user import FixedPlan, User
from gymapp.repositories.schedule import (
    class_enrollment_repository,
    class_instance_repository,
    class_waitlist_repository,
)
from gymapp.schemas.schedule import PlanEnrollmentRequest
from gymapp.services import recurrence
from gymapp.services.class_instance import (
    PendingNotification,
    class_instance_service,
    dispatch_notifications,
    sync_capacity_status,
)
from gymapp.services.credit_ledger import credit_ledger

logger = logging.getLogger(__name__)


class EnrollmentService:

    def _get_user(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado.")
        return user

    def _check_enrollable(self, instance: ClassInstance, user: User) -> None:
        if instance.status != ClassInstanceStatus.ACTIVA:
            raise StateConflictError(f"No te puedes inscribir a una clase {instance.status.value}.")
        if len(instance.enrollments) >= instance.capacity:
            raise StateConflictError("No te puedes inscribir a una clase llena.")
        if any(e.user_id == user.id for e in instance.enrollments):
            raise StateConflictError("Ya estás inscrito en esta clase.")
        if instance.class_type is None:
            raise ConsistencyError("La clase no tiene un tipo de clase asociado.")
        if instance.class_type.is_universal:
            raise ValidationError("No se puede reservar una clase del tipo crédito universal.")

    def _add_enrollment(self, db: Session, instance: ClassInstance, user: User, charge_credit: bool) -> Optional[int]:
        """Debita (si corresponde), agrega la inscripción y actualiza el estado del turno."""
        credit_type_id = None
        if charge_credit:
            credit_type_id = credit_ledger.resolve_debit(db, user, instance)
            if credit_type_id is not None:
                credit_ledger.debit_for_enrollment(db, user, instance, credit_type_id)
        instance.enrollments.append(ClassEnrollment(
            user_id=user.id,
            credit_type_id=credit_type_id,
            credit_exempt=credit_type_id is None,
        ))
        sync_capacity_status(instance)
        return credit_type_id

    def _remove_from_waitlist(self, db: Session, instance: ClassInstance, user_id: int) -> None:
        entry = class_waitlist_repository.get(db, class_id=instance.id, user_id=user_id)
        if entry is not None:
            instance.waitlist.remove(entry)

    def _spot_opened_notifications(self, instance: ClassInstance) -> List[PendingNotification]:
        moment = format_class_moment(instance.date, instance.start_time)
        return [
            (
                entry.user_id,
                "¡Se liberó un lugar!",
                f"Hay un lugar disponible en la clase '{instance.name}' del {moment}. Inscribite antes de que se ocupe.",
                instance.id,
            )
            for entry in instance.waitlist
        ]

    def enroll(self, db: Session, class_id: int, user: User) -> Dict[str, Any]:
        """
        Inscribe al usuario actual. Orden de débito: pase libre (no debita),
        créditos del tipo de la clase, créditos universales.
        """
        instance = class_instance_service.get_instance_for_update(db, class_id)
        self._check_enrollable(instance, user)
        credit_type_id = self._add_enrollment(db, instance, user, charge_credit=True)
        db.commit()
        db.refresh(instance)
        logger.info(
            f"Usuario {user.id} inscrito en clase {instance.id} (crédito: {credit_type_id or 'pase libre'})"
        )
        return {"message": "Inscripción exitosa.", "class_instance": instance, "credit_type_id": credit_type_id}

    def _check_unenroll_deadline(self, db: Session, instance: ClassInstance, now: Optional[datetime]) -> None:
        gym_timezone = get_gym_timezone(db)
        cutoff_minutes = get_unenroll_cutoff_minutes(db)
        start = class_start_instant(instance.date, instance.start_time, gym_timezone)
        deadline = start - timedelta(minutes=cutoff_minutes)
        now = now or datetime.now(timezone.utc)
        if now >= deadline:
            local_deadline = convert_utc_to_local(deadline, gym_timezone)
            if cutoff_minutes == 60:
                window = "una hora"
            else:
                window = f"{cutoff_minutes} minutos"
            raise StateConflictError(
                f"No puedes anular la inscripción a menos de {window} del inicio de la clase. "
                f"El plazo venció el {local_deadline:%d/%m/%Y} a las {local_deadline:%H:%M}."
            )

    def _remove_enrollment(
        self,
        db: Session,
        instance: ClassInstance,
        user: User,
        reason: CreditLogReason,
        admin_id: Optional[int] = None
    ) -> Optional[int]:
        enrollment = class_enrollment_repository.get(db, class_id=instance.id, user_id=user.id)
        if enrollment is None:
            raise StateConflictError("El usuario no está inscrito en esta clase.")
        refunded_type = credit_ledger.refund_enrollment(db, user, instance, enrollment, reason, admin_id=admin_id)
        instance.enrollments.remove(enrollment)
        sync_capacity_status(instance)
        return refunded_type

    def unenroll(self, db: Session, class_id: int, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Anula la inscripción del usuario actual si falta más que el plazo
        mínimo para el inicio (hora local del gimnasio). Reembolsa el tipo de
        crédito que se debitó y avisa a la lista de espera.
        """
        instance = class_instance_service.get_instance_for_update(db, class_id)
        self._check_unenroll_deadline(db, instance, now)
        refunded_type = self._remove_enrollment(db, instance, user, CreditLogReason.REEMBOLSO_ANULACION)
        pending = self._spot_opened_notifications(instance)
        db.commit()
        db.refresh(instance)
        logger.info(f"Usuario {user.id} anuló su inscripción a la clase {instance.id} (reembolso: {refunded_type})")
        dispatch_notifications(db, pending, type="lugar_disponible")

        if refunded_type is not None:
            message = "Anulación exitosa. Se ha añadido 1 crédito a tu cuenta."
        else:
            message = "Anulación exitosa."
        return {"message": message, "class_instance": instance, "credit_type_id": refunded_type}

    def admin_add_user(
        self, db: Session, class_id: int, user_id: int, charge_credit: bool = True, admin_id: Optional[int] = None
    ) -> Dict[str, Any]:
        instance = class_instance_service.get_instance_for_update(db, class_id)
        user = self._get_user(db, user_id)
        self._check_enrollable(instance, user)
        credit_type_id = self._add_enrollment(db, instance, user, charge_credit=charge_credit)
        self._remove_from_waitlist(db, instance, user.id)
        db.commit()
        db.refresh(instance)
        logger.info(f"Admin {admin_id} inscribió al usuario {user.id} en la clase {instance.id}")

        moment = format_class_moment(instance.date, instance.start_time)
        dispatch_notifications(
            db,
            [(user.id, "Inscripción confirmada", f"Fuiste inscrito en la clase '{instance.name}' del {moment}.", instance.id)],
            type="inscripcion_admin",
        )
        return {"message": "Usuario inscrito exitosamente.", "class_instance": instance, "credit_type_id": credit_type_id}

    def admin_remove_user(
        self, db: Session, class_id: int, user_id: int, admin_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Quita a un usuario sin aplicar el plazo de anulación; reembolsa igual que la anulación."""
        instance = class_instance_service.get_instance_for_update(db, class_id)
        user = self._get_user(db, user_id)
        refunded_type = self._remove_enrollment(
            db, instance, user, CreditLogReason.REEMBOLSO_CANCELACION_ADMIN, admin_id=admin_id
        )
        moment = format_class_moment(instance.date, instance.start_time)
        suffix = " Se te ha reembolsado 1 crédito." if refunded_type is not None else ""
        pending = [(user.id, "Inscripción anulada",
                    f"Fuiste dado de baja de la clase '{instance.name}' del {moment}.{suffix}", instance.id)]
        pending.extend(self._spot_opened_notifications(instance))
        db.commit()
        db.refresh(instance)
        logger.info(f"Admin {admin_id} quitó al usuario {user.id} de la clase {instance.id}")
        dispatch_notifications(db, pending, type="baja_admin")
        return {"message": "Usuario quitado de la clase.", "class_instance": instance, "credit_type_id": refunded_type}

    def subscribe_to_waitlist(self, db: Session, class_id: int, user: User) -> ClassInstance:
        """Sólo con la clase completa. Repetir la suscripción no hace nada."""
        instance = class_instance_service.get_instance_for_update(db, class_id)
        if instance.status == ClassInstanceStatus.CANCELADA:
            raise StateConflictError("No puedes anotarte en la lista de espera de una clase cancelada.")
        if any(e.user_id == user.id for e in instance.enrollments):
            raise StateConflictError("Ya estás inscrito en esta clase.")
        if any(w.user_id == user.id for w in instance.waitlist):
            return instance
        if len(instance.enrollments) < instance.capacity:
            raise StateConflictError("La clase todavía tiene lugares disponibles; inscríbete directamente.")

        instance.waitlist.append(ClassWaitlistEntry(user_id=user.id))
        db.commit()
        db.refresh(instance)
        logger.info(f"Usuario {user.id} en lista de espera de la clase {instance.id}")
        return instance

    def unsubscribe_from_waitlist(self, db: Session, class_id: int, user: User) -> ClassInstance:
        instance = class_instance_service.get_instance(db, class_id)
        entry = class_waitlist_repository.get(db, class_id=instance.id, user_id=user.id)
        if entry is not None:
            instance.waitlist.remove(entry)
            db.commit()
            db.refresh(instance)
            logger.info(f"Usuario {user.id} salió de la lista de espera de la clase {instance.id}")
        return instance

    def _plan_instances(
        self, db: Session, class_type_id: int, weekdays: List[str], start_date: date, end_date: date,
        start_time: Optional[str] = None
    ) -> List[ClassInstance]:
        wanted = set(recurrence.normalize_weekdays(weekdays))
        instances = class_instance_repository.get_for_plan(
            db, class_type_id=class_type_id, start_date=start_date, end_date=end_date, start_time=start_time
        )
        return [i for i in instances if recurrence.weekday_label(i.date) in wanted]

    def get_available_slots_for_plan(
        self, db: Session, class_type_id: int, weekdays: List[str], start_date: date, end_date: date
    ) -> List[Dict[str, str]]:
        """Franjas horarias distintas de las clases activas que coinciden con el plan."""
        if not weekdays:
            raise ValidationError("Faltan parámetros de búsqueda.")
        slots = {
            (i.start_time, i.end_time)
            for i in self._plan_instances(db, class_type_id, weekdays, start_date, end_date)
        }
        return [{"start_time": s, "end_time": e} for s, e in sorted(slots)]

    def subscribe_user_to_plan(
        self, db: Session, data: PlanEnrollmentRequest, admin_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Inscribe a un usuario en todas las clases activas del plan y guarda el
        plan fijo. Se validan todas las clases antes de inscribir en ninguna y
        todo se confirma en una sola transacción. No consume créditos.
        """
        user = self._get_user(db, data.user_id)
        class_type = class_instance_service.get_bookable_class_type(db, data.class_type_id)
        weekdays = recurrence.normalize_weekdays(data.weekdays)
        instances = self._plan_instances(
            db, class_type.id, weekdays, data.start_date, data.end_date, start_time=data.start_time
        )
        if not instances:
            raise NotFoundError(
                "No se encontraron clases que coincidan con los criterios exactos (días, fechas y horario)."
            )

        for instance in instances:
            moment = format_class_moment(instance.date, instance.start_time)
            if any(e.user_id == user.id for e in instance.enrollments):
                raise StateConflictError(f"El usuario ya está inscrito en la clase del {moment}.")
            if len(instance.enrollments) >= instance.capacity:
                raise StateConflictError(f"La clase del {moment} no tiene lugares disponibles.")

        for instance in instances:
            self._add_enrollment(db, instance, user, charge_credit=False)
            self._remove_from_waitlist(db, instance, user.id)

        plan = FixedPlan(
            user_id=user.id,
            class_type_id=class_type.id,
            weekdays=weekdays,
            start_time=data.start_time,
            end_time=data.end_time or instances[0].end_time,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        db.add(plan)
        db.commit()
        db.refresh(plan)
        logger.info(
            f"Admin {admin_id} inscribió al usuario {user.id} en {len(instances)} clases del plan {plan.id}"
        )

        dispatch_notifications(
            db,
            [(user.id, "Plan fijo asignado",
              f"Fuiste inscrito en {len(instances)} clases de '{class_type.name}' ({', '.join(weekdays)} {data.start_time}).",
              None)],
            type="plan_fijo",
        )
        return {
            "message": f"Inscripción masiva completada. El usuario fue añadido a {len(instances)} clases.",
            "enrolled": len(instances),
            "plan_id": plan.id,
        }


enrollment_service = EnrollmentService()

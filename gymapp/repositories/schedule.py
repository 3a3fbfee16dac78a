from typing import List, Optional, Sequence
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from gymapp.models.schedule import (
    ClassInstance,
    ClassEnrollment,
    ClassWaitlistEntry,
    ClassInstanceStatus,
    EnrollmentKind,
)
from gymapp.repositories.base import BaseRepository
from gymapp.schemas.schedule import ClassInstanceCreate, ClassInstanceUpdate


def _day_range(day: date):
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


class ClassInstanceRepository(BaseRepository[ClassInstance, ClassInstanceCreate, ClassInstanceUpdate]):
    def get_for_update(self, db: Session, id: int) -> Optional[ClassInstance]:
        """
        Obtener el turno bloqueando la fila hasta el fin de la transacción
        (SELECT ... FOR UPDATE en PostgreSQL).
        """
        return (
            db.query(ClassInstance)
            .filter(ClassInstance.id == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_filtered(
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
        query = db.query(ClassInstance)
        if start_date:
            query = query.filter(ClassInstance.date >= _day_range(start_date)[0])
        if end_date:
            query = query.filter(ClassInstance.date < _day_range(end_date)[1])
        if class_type_id:
            query = query.filter(ClassInstance.class_type_id == class_type_id)
        if status:
            query = query.filter(ClassInstance.status == status)
        return (
            query.order_by(ClassInstance.date, ClassInstance.start_time, ClassInstance.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_day_and_status(
        self, db: Session, *, day: date, statuses: Sequence[ClassInstanceStatus]
    ) -> List[ClassInstance]:
        start, end = _day_range(day)
        return (
            db.query(ClassInstance)
            .filter(
                ClassInstance.date >= start,
                ClassInstance.date < end,
                ClassInstance.status.in_(list(statuses)),
            )
            .order_by(ClassInstance.start_time, ClassInstance.id)
            .all()
        )

    def get_family(
        self,
        db: Session,
        *,
        name: str,
        class_type_id: int,
        start_time: str,
        from_date: Optional[date] = None
    ) -> List[ClassInstance]:
        """
        Turnos que comparten nombre, tipo y hora de inicio, en orden cronológico.
        """
        query = db.query(ClassInstance).filter(
            ClassInstance.name == name,
            ClassInstance.class_type_id == class_type_id,
            ClassInstance.start_time == start_time,
        )
        if from_date:
            query = query.filter(ClassInstance.date >= _day_range(from_date)[0])
        return query.order_by(ClassInstance.date, ClassInstance.id).all()

    def get_last_of_family(
        self, db: Session, *, name: str, class_type_id: int, start_time: str
    ) -> Optional[ClassInstance]:
        return (
            db.query(ClassInstance)
            .filter(
                ClassInstance.name == name,
                ClassInstance.class_type_id == class_type_id,
                ClassInstance.start_time == start_time,
            )
            .order_by(ClassInstance.date.desc(), ClassInstance.id.desc())
            .first()
        )

    def get_by_rule(self, db: Session, recurrence_rule: str) -> List[ClassInstance]:
        return (
            db.query(ClassInstance)
            .filter(ClassInstance.recurrence_rule == recurrence_rule)
            .order_by(ClassInstance.date)
            .all()
        )

    def get_recurring_from(self, db: Session, from_dt: datetime) -> List[ClassInstance]:
        """Turnos con regla de recurrencia desde ``from_dt``, en orden cronológico."""
        return (
            db.query(ClassInstance)
            .filter(ClassInstance.recurrence_rule.isnot(None), ClassInstance.date >= from_dt)
            .order_by(ClassInstance.date, ClassInstance.id)
            .all()
        )

    def get_fixed_before(self, db: Session, before: datetime) -> List[ClassInstance]:
        return (
            db.query(ClassInstance)
            .filter(ClassInstance.enrollment_kind == EnrollmentKind.FIJO, ClassInstance.date < before)
            .order_by(ClassInstance.date, ClassInstance.id)
            .all()
        )

    def get_for_plan(
        self,
        db: Session,
        *,
        class_type_id: int,
        start_date: date,
        end_date: date,
        start_time: Optional[str] = None,
        status: ClassInstanceStatus = ClassInstanceStatus.ACTIVA
    ) -> List[ClassInstance]:
        """
        Turnos de un tipo en un rango de fechas; el filtro por día de la semana
        lo aplica el servicio sobre las etiquetas guardadas.
        """
        query = db.query(ClassInstance).filter(
            ClassInstance.class_type_id == class_type_id,
            ClassInstance.date >= _day_range(start_date)[0],
            ClassInstance.date < _day_range(end_date)[1],
        )
        if status is not None:
            query = query.filter(ClassInstance.status == status)
        if start_time:
            query = query.filter(ClassInstance.start_time == start_time)
        return query.order_by(ClassInstance.date, ClassInstance.start_time).all()


class ClassEnrollmentRepository:
    def get(self, db: Session, *, class_id: int, user_id: int) -> Optional[ClassEnrollment]:
        return (
            db.query(ClassEnrollment)
            .filter(ClassEnrollment.class_id == class_id, ClassEnrollment.user_id == user_id)
            .first()
        )


class ClassWaitlistRepository:
    def get(self, db: Session, *, class_id: int, user_id: int) -> Optional[ClassWaitlistEntry]:
        return (
            db.query(ClassWaitlistEntry)
            .filter(ClassWaitlistEntry.class_id == class_id, ClassWaitlistEntry.user_id == user_id)
            .first()
        )


# Instantiate repositories
class_instance_repository = ClassInstanceRepository(ClassInstance)
class_enrollment_repository = ClassEnrollmentRepository()
class_waitlist_repository = ClassWaitlistRepository()

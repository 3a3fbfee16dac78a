"""
Operaciones en lote sobre familias de turnos.

Una familia son los turnos que comparten nombre, tipo de clase y hora de
inicio. Cada operación se confirma en una sola transacción: si algo falla
a mitad de camino no queda ningún cambio aplicado.
"""
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from gymapp.core.exceptions import NotFoundError, ValidationError
from gymapp.core.tenant import get_gym_timezone
from gymapp.core.timezone_utils import gym_today, month_bounds
from gymapp.models.gym_settings import GymSettings
from gymapp.models.schedule import ClassInstance, ClassInstanceStatus, EnrollmentKind
from gymapp.repositories.class_type import class_type_repository
from gymapp.repositories.schedule import class_instance_repository
from gymapp.schemas.schedule import ClassFamilyChanges, ClassFamilyFilter
from gymapp.services import recurrence
from gymapp.services.class_instance import sync_capacity_status

logger = logging.getLogger(__name__)


def _observed_weekdays(instances: Iterable[ClassInstance]) -> List[str]:
    labels = {recurrence.weekday_label(i.date) for i in instances}
    return recurrence.normalize_weekdays(labels)


def _copy_instance(template: ClassInstance, class_date: datetime, recurrence_rule: Optional[str]) -> ClassInstance:
    return ClassInstance(
        name=template.name,
        class_type_id=template.class_type_id,
        start_time=template.start_time,
        end_time=template.end_time,
        capacity=template.capacity,
        date=class_date,
        weekdays=[recurrence.weekday_label(class_date)],
        enrollment_kind=EnrollmentKind.FIJO if recurrence_rule else (template.enrollment_kind or EnrollmentKind.LIBRE),
        recurrence_rule=recurrence_rule,
        status=ClassInstanceStatus.ACTIVA,
        teacher_id=template.teacher_id,
    )


class BulkScheduleService:

    def _from_date(self, db: Session, filters: ClassFamilyFilter) -> date:
        return filters.from_date or gym_today(get_gym_timezone(db))

    def _get_family(self, db: Session, filters: ClassFamilyFilter, from_date: date) -> List[ClassInstance]:
        return class_instance_repository.get_family(
            db,
            name=filters.name,
            class_type_id=filters.class_type_id,
            start_time=filters.start_time,
            from_date=from_date,
        )

    def _delete_instances(self, db: Session, instances: List[ClassInstance]) -> None:
        for instance in instances:
            if instance.class_type is not None:
                class_type_repository.adjust_total_credits(db, instance.class_type, -instance.capacity)
            db.delete(instance)

    def bulk_update(self, db: Session, filters: ClassFamilyFilter, updates: ClassFamilyChanges) -> Dict[str, Any]:
        """
        Si cambian los días de la semana se borra la familia futura y se
        regenera con el nuevo patrón hasta la última fecha existente; si no,
        se actualizan los campos en cada turno.
        """
        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("Se requieren filtros y datos para actualizar.")

        from_date = self._from_date(db, filters)
        family = self._get_family(db, filters, from_date)

        if "weekdays" in changes:
            return self._regenerate_family(db, family, from_date, changes)

        if not family:
            raise NotFoundError("No se encontraron clases que coincidan con los filtros para actualizar.")

        new_capacity = changes.get("capacity")
        if new_capacity is not None:
            for instance in family:
                if new_capacity < len(instance.enrollments):
                    raise ValidationError(
                        f"La clase del {instance.date:%d/%m/%Y} tiene {len(instance.enrollments)} inscritos; "
                        f"la capacidad no puede ser menor."
                    )
        start_time = changes.get("start_time")
        end_time = changes.get("end_time")
        for instance in family:
            if (end_time or instance.end_time) <= (start_time or instance.start_time):
                raise ValidationError("La hora de fin debe ser posterior a la hora de inicio.")

        for instance in family:
            if new_capacity is not None and instance.class_type is not None:
                class_type_repository.adjust_total_credits(db, instance.class_type, new_capacity - instance.capacity)
            for field in ("name", "start_time", "end_time", "capacity", "teacher_id"):
                if field in changes:
                    setattr(instance, field, changes[field])
            sync_capacity_status(instance)

        db.commit()
        logger.info(f"Actualización en lote de '{filters.name}' {filters.start_time}: {len(family)} clases")
        return {"message": "Operación completada.", "matched": len(family), "updated": len(family)}

    def _regenerate_family(
        self, db: Session, family: List[ClassInstance], from_date: date, changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        if not family:
            raise NotFoundError("No se encontraron clases futuras para modificar los días.")
        weekdays = recurrence.normalize_weekdays(changes["weekdays"])
        if not weekdays:
            raise ValidationError("Se requiere al menos un día de la semana.")

        template = family[0]
        last_date = family[-1].date.date()
        new_start = changes.get("start_time", template.start_time)
        new_end = changes.get("end_time", template.end_time)
        if new_end <= new_start:
            raise ValidationError("La hora de fin debe ser posterior a la hora de inicio.")

        dates = recurrence.expand(weekdays, from_date, last_date)
        if not dates:
            raise ValidationError(
                "La configuración no generó ninguna clase. Revisa las fechas y los días seleccionados."
            )
        token = recurrence.rule_token(weekdays, from_date, last_date)

        new_instances = []
        for class_date in dates:
            instance = _copy_instance(template, class_date, token)
            instance.name = changes.get("name", template.name)
            instance.start_time = new_start
            instance.end_time = new_end
            instance.capacity = changes.get("capacity", template.capacity)
            instance.teacher_id = changes.get("teacher_id", template.teacher_id)
            instance.enrollment_kind = EnrollmentKind.FIJO
            new_instances.append(instance)

        class_type = template.class_type
        self._delete_instances(db, family)
        db.flush()
        db.add_all(new_instances)
        if class_type is not None:
            class_type_repository.adjust_total_credits(
                db, class_type, sum(i.capacity for i in new_instances)
            )
        db.commit()
        logger.info(
            f"Familia '{template.name}' regenerada con días {weekdays}: "
            f"{len(family)} eliminadas, {len(new_instances)} creadas"
        )
        return {
            "message": "Días de clase actualizados.",
            "matched": len(family),
            "deleted": len(family),
            "created": len(new_instances),
        }

    def bulk_delete(self, db: Session, filters: ClassFamilyFilter) -> Dict[str, Any]:
        """
        Limpieza administrativa: borra los turnos de la familia desde la
        fecha de corte sin reembolsar a los inscritos.
        """
        from_date = self._from_date(db, filters)
        family = self._get_family(db, filters, from_date)
        if not family:
            raise NotFoundError("No se encontraron clases que coincidan con los filtros para eliminar.")
        self._delete_instances(db, family)
        db.commit()
        logger.info(f"Eliminación en lote de '{filters.name}' {filters.start_time}: {len(family)} clases")
        return {"message": "Clases eliminadas exitosamente.", "matched": len(family), "deleted": len(family)}

    def bulk_extend(self, db: Session, filters: ClassFamilyFilter, end_date: date) -> Dict[str, Any]:
        """
        Continúa el patrón de la familia desde el día siguiente a su último
        turno hasta ``end_date``, copiando capacidad, profesor y horario.
        """
        last = class_instance_repository.get_last_of_family(
            db, name=filters.name, class_type_id=filters.class_type_id, start_time=filters.start_time
        )
        if last is None:
            raise NotFoundError(
                "No se encontró una clase existente que coincida con los filtros para usar como plantilla."
            )
        start_date = last.date.date() + timedelta(days=1)
        if start_date > end_date:
            raise ValidationError("La fecha de extensión debe ser posterior a la última clase existente.")

        if last.recurrence_rule:
            pattern = class_instance_repository.get_by_rule(db, last.recurrence_rule)
        else:
            pattern = class_instance_repository.get_family(
                db, name=last.name, class_type_id=last.class_type_id, start_time=last.start_time
            )
        weekdays = _observed_weekdays(pattern)
        dates = recurrence.expand(weekdays, start_date, end_date)
        if not dates:
            raise ValidationError("La extensión no generó ninguna clase nueva. Revisa la fecha final.")

        token = last.recurrence_rule or recurrence.rule_token(weekdays, start_date, end_date)
        new_instances = [_copy_instance(last, class_date, token) for class_date in dates]
        db.add_all(new_instances)
        if last.class_type is not None:
            class_type_repository.adjust_total_credits(db, last.class_type, last.capacity * len(new_instances))
        db.commit()
        logger.info(f"Familia '{last.name}' extendida hasta {end_date}: {len(new_instances)} clases nuevas")
        return {"message": "Clases extendidas exitosamente.", "created": len(new_instances)}

    def get_grouped_classes(self, db: Session, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Un resumen por regla de recurrencia con los turnos futuros de cada serie.
        """
        today = today or gym_today(get_gym_timezone(db))
        instances = class_instance_repository.get_recurring_from(db, datetime(today.year, today.month, today.day))

        groups: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for instance in instances:
            group = groups.get(instance.recurrence_rule)
            if group is None:
                group = {
                    "recurrence_rule": instance.recurrence_rule,
                    "name": instance.name,
                    "start_time": instance.start_time,
                    "end_time": instance.end_time,
                    "class_type_id": instance.class_type_id,
                    "class_type_name": instance.class_type.name if instance.class_type else None,
                    "teacher_ids": [],
                    "weekdays": set(),
                    "instance_count": 0,
                }
                groups[instance.recurrence_rule] = group
            if instance.teacher_id is not None and instance.teacher_id not in group["teacher_ids"]:
                group["teacher_ids"].append(instance.teacher_id)
            group["weekdays"].add(recurrence.weekday_label(instance.date))
            group["instance_count"] += 1

        for group in groups.values():
            group["weekdays"] = recurrence.normalize_weekdays(group["weekdays"])
        return list(groups.values())

    def generate_future_fixed_classes(self, db: Session, today: Optional[date] = None) -> int:
        """
        Genera las clases fijas del mes siguiente. Cada familia (nombre, tipo,
        horario y profesor) usa su último turno pasado como plantilla y los
        días observados en la serie; no duplica fechas existentes.
        """
        gym_timezone = get_gym_timezone(db)
        today = today or gym_today(gym_timezone)
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        start_date, end_date = month_bounds(year, month)
        month_key = f"{year:04d}-{month:02d}"

        cutoff = datetime(today.year, today.month, today.day, 23, 59, 59)
        families: "OrderedDict[tuple, List[ClassInstance]]" = OrderedDict()
        for instance in class_instance_repository.get_fixed_before(db, cutoff):
            key = (instance.name, instance.class_type_id, instance.start_time, instance.end_time, instance.teacher_id)
            families.setdefault(key, []).append(instance)

        created = 0
        for key, instances in families.items():
            template = instances[-1]
            if template.class_type_id is None:
                logger.warning(f"Saltando familia '{template.name}': sin tipo de clase")
                continue
            series = instances
            if template.recurrence_rule:
                series = [i for i in instances if i.recurrence_rule == template.recurrence_rule] or instances
            weekdays = _observed_weekdays(series)

            existing = {
                i.date.date()
                for i in class_instance_repository.get_family(
                    db, name=template.name, class_type_id=template.class_type_id,
                    start_time=template.start_time, from_date=start_date
                )
            }
            new_instances = [
                _copy_instance(template, class_date, template.recurrence_rule)
                for class_date in recurrence.expand(weekdays, start_date, end_date)
                if class_date.date() not in existing
            ]
            if not new_instances:
                continue
            db.add_all(new_instances)
            if template.class_type is not None:
                class_type_repository.adjust_total_credits(
                    db, template.class_type, template.capacity * len(new_instances)
                )
            created += len(new_instances)

        gym_settings = db.query(GymSettings).first()
        if gym_settings is not None:
            gym_settings.last_class_generation_month = month_key
        db.commit()
        logger.info(f"Generación mensual {month_key}: {created} clases nuevas")
        return created


bulk_schedule_service = BulkScheduleService()

import logging
import math
from typing import Optional

from sqlalchemy.orm import Session

from gymapp.core.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from gymapp.models.class_type import ClassType
from gymapp.repositories.class_type import class_type_repository
from gymapp.schemas.class_type import ClassType as ClassTypeSchema
from gymapp.schemas.class_type import ClassTypeCreate, ClassTypeList, ClassTypeUpdate
from gymapp.services.credit_ledger import credit_ledger

logger = logging.getLogger(__name__)


class ClassTypeService:

    def _to_schema(self, class_type: ClassType, assigned: int) -> ClassTypeSchema:
        schema = ClassTypeSchema.model_validate(class_type)
        schema.available_credits = credit_ledger.available_credits(class_type, assigned)
        return schema

    def get_class_type(self, db: Session, class_type_id: int) -> ClassType:
        class_type = class_type_repository.get(db, id=class_type_id)
        if not class_type:
            raise NotFoundError("Tipo de clase no encontrado.")
        return class_type

    def get_class_type_detail(self, db: Session, class_type_id: int) -> ClassTypeSchema:
        class_type = self.get_class_type(db, class_type_id)
        assigned = class_type_repository.assigned_credits(db, [class_type.id]).get(class_type.id, 0)
        return self._to_schema(class_type, assigned)

    def list_class_types(
        self, db: Session, *, page: int = 1, limit: int = 20, keyword: Optional[str] = None
    ) -> ClassTypeList:
        """
        Listado paginado. ``available_credits`` se calcula en cada lectura y
        nunca se muestra negativo.
        """
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        items, total = class_type_repository.search(db, keyword=keyword, skip=(page - 1) * limit, limit=limit)
        assigned = class_type_repository.assigned_credits(db, [item.id for item in items])
        return ClassTypeList(
            items=[self._to_schema(item, assigned.get(item.id, 0)) for item in items],
            total=total,
            page=page,
            pages=math.ceil(total / limit) if total else 0,
        )

    def create_class_type(self, db: Session, data: ClassTypeCreate) -> ClassTypeSchema:
        if class_type_repository.get_by_name(db, data.name):
            raise ValidationError(f"Ya existe un tipo de clase con el nombre '{data.name}'.")
        class_type = class_type_repository.create(db, obj_in={**data.model_dump(), "total_credits": 0})
        logger.info(f"Tipo de clase creado: {class_type.id} '{class_type.name}'")
        return self._to_schema(class_type, 0)

    def update_class_type(self, db: Session, class_type_id: int, data: ClassTypeUpdate) -> ClassTypeSchema:
        class_type = self.get_class_type(db, class_type_id)
        if class_type.is_universal:
            raise AuthorizationError("El tipo de crédito universal no se puede modificar.")

        update_data = data.model_dump(exclude_unset=True)
        if "name" in update_data:
            update_data["name"] = update_data["name"].strip()
            existing = class_type_repository.get_by_name(db, update_data["name"])
            if existing and existing.id != class_type.id:
                raise ValidationError(f"Ya existe un tipo de clase con el nombre '{update_data['name']}'.")

        class_type = class_type_repository.update(db, db_obj=class_type, obj_in=update_data)
        logger.info(f"Tipo de clase actualizado: {class_type.id}")
        return self.get_class_type_detail(db, class_type.id)

    def delete_class_type(self, db: Session, class_type_id: int) -> None:
        class_type = self.get_class_type(db, class_type_id)
        if class_type.is_universal:
            raise AuthorizationError("El tipo de crédito universal no se puede eliminar.")
        if class_type_repository.has_instances(db, class_type.id):
            raise StateConflictError("No se puede eliminar: hay clases asociadas a este tipo.")
        if class_type_repository.has_credit_holders(db, class_type.id):
            raise StateConflictError("No se puede eliminar: hay usuarios con créditos de este tipo.")
        if class_type_repository.has_subscriptions_or_plans(db, class_type.id):
            raise StateConflictError("No se puede eliminar: hay suscripciones o planes fijos de este tipo.")
        class_type_repository.delete_empty_balances(db, class_type.id)
        class_type_repository.remove(db, id=class_type.id)
        logger.info(f"Tipo de clase eliminado: {class_type_id}")


class_type_service = ClassTypeService()

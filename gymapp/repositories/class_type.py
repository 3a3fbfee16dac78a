from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from gymapp.models.class_type import ClassType
from gymapp.models.schedule import ClassInstance
from gymapp.models.user import FixedPlan, MonthlySubscription, UserCredit
from gymapp.repositories.base import BaseRepository
from gymapp.schemas.class_type import ClassTypeCreate, ClassTypeUpdate


class ClassTypeRepository(BaseRepository[ClassType, ClassTypeCreate, ClassTypeUpdate]):
    def get_universal(self, db: Session) -> Optional[ClassType]:
        return db.query(ClassType).filter(ClassType.is_universal.is_(True)).first()

    def get_by_name(self, db: Session, name: str) -> Optional[ClassType]:
        return db.query(ClassType).filter(func.lower(ClassType.name) == name.strip().lower()).first()

    def search(
        self, db: Session, *, keyword: Optional[str] = None, skip: int = 0, limit: int = 20
    ) -> Tuple[List[ClassType], int]:
        """
        Búsqueda por nombre o descripción, ordenada por nombre.
        """
        query = db.query(ClassType)
        if keyword:
            pattern = f"%{keyword.strip()}%"
            query = query.filter(or_(ClassType.name.ilike(pattern), ClassType.description.ilike(pattern)))
        total = query.count()
        items = query.order_by(ClassType.name).offset(skip).limit(limit).all()
        return items, total

    def assigned_credits(self, db: Session, class_type_ids: List[int]) -> Dict[int, int]:
        """Suma de saldos de todos los usuarios para cada tipo."""
        if not class_type_ids:
            return {}
        rows = (
            db.query(UserCredit.class_type_id, func.coalesce(func.sum(UserCredit.balance), 0))
            .filter(UserCredit.class_type_id.in_(class_type_ids))
            .group_by(UserCredit.class_type_id)
            .all()
        )
        return {class_type_id: int(total) for class_type_id, total in rows}

    def has_instances(self, db: Session, class_type_id: int) -> bool:
        query = db.query(ClassInstance.id).filter(ClassInstance.class_type_id == class_type_id)
        return db.query(query.exists()).scalar()

    def has_credit_holders(self, db: Session, class_type_id: int) -> bool:
        query = db.query(UserCredit.id).filter(
            UserCredit.class_type_id == class_type_id, UserCredit.balance != 0
        )
        return db.query(query.exists()).scalar()

    def has_subscriptions_or_plans(self, db: Session, class_type_id: int) -> bool:
        subscriptions = db.query(MonthlySubscription.id).filter(MonthlySubscription.class_type_id == class_type_id)
        plans = db.query(FixedPlan.id).filter(FixedPlan.class_type_id == class_type_id)
        return db.query(subscriptions.exists()).scalar() or db.query(plans.exists()).scalar()

    def delete_empty_balances(self, db: Session, class_type_id: int) -> int:
        """Borra los saldos en cero que todavía apuntan al tipo."""
        return (
            db.query(UserCredit)
            .filter(UserCredit.class_type_id == class_type_id, UserCredit.balance == 0)
            .delete(synchronize_session="fetch")
        )

    def adjust_total_credits(self, db: Session, class_type: ClassType, delta: int) -> None:
        if delta:
            class_type.total_credits = (class_type.total_credits or 0) + delta
            db.add(class_type)

    def get_reset_monthly(self, db: Session) -> List[ClassType]:
        return db.query(ClassType).filter(ClassType.reset_monthly.is_(True)).all()


class_type_repository = ClassTypeRepository(ClassType)

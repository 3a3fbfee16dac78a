from typing import List, Optional
from datetime import date

from sqlalchemy.orm import Session

from gymapp.models.user import User, UserCredit, FixedPlan, MonthlySubscription, SubscriptionStatus
from gymapp.repositories.base import BaseRepository


class UserRepository(BaseRepository[User, dict, dict]):
    def get_credit(self, db: Session, *, user_id: int, class_type_id: int) -> Optional[UserCredit]:
        return (
            db.query(UserCredit)
            .filter(UserCredit.user_id == user_id, UserCredit.class_type_id == class_type_id)
            .first()
        )

    def get_or_create_credit(self, db: Session, *, user: User, class_type_id: int) -> UserCredit:
        credit = self.get_credit(db, user_id=user.id, class_type_id=class_type_id)
        if credit is None:
            credit = UserCredit(user_id=user.id, class_type_id=class_type_id, balance=0)
            db.add(credit)
            db.flush()
        return credit

    def delete_credits(self, db: Session, *, user_id: int) -> List[UserCredit]:
        """Elimina todos los saldos del usuario y devuelve los registros eliminados."""
        credits = db.query(UserCredit).filter(UserCredit.user_id == user_id).all()
        for credit in credits:
            db.delete(credit)
        db.flush()
        return credits

    def delete_credits_of_types(self, db: Session, *, class_type_ids: List[int]) -> List[UserCredit]:
        """Elimina los saldos de los tipos indicados y devuelve los registros eliminados."""
        if not class_type_ids:
            return []
        credits = db.query(UserCredit).filter(UserCredit.class_type_id.in_(class_type_ids)).all()
        for credit in credits:
            db.delete(credit)
        db.flush()
        return credits

    def get_subscription(self, db: Session, *, user_id: int, class_type_id: int) -> Optional[MonthlySubscription]:
        return (
            db.query(MonthlySubscription)
            .filter(MonthlySubscription.user_id == user_id, MonthlySubscription.class_type_id == class_type_id)
            .first()
        )

    def get_automatic_subscriptions(self, db: Session) -> List[MonthlySubscription]:
        return (
            db.query(MonthlySubscription)
            .join(User, User.id == MonthlySubscription.user_id)
            .filter(
                MonthlySubscription.status == SubscriptionStatus.AUTOMATICA,
                User.is_active.is_(True),
            )
            .order_by(MonthlySubscription.id)
            .all()
        )

    def get_fixed_plan(self, db: Session, *, user_id: int, plan_id: int) -> Optional[FixedPlan]:
        return (
            db.query(FixedPlan)
            .filter(FixedPlan.id == plan_id, FixedPlan.user_id == user_id)
            .first()
        )

    def get_with_free_pass_ending(self, db: Session, *, day: date) -> List[User]:
        return (
            db.query(User)
            .filter(User.free_pass_until == day, User.is_active.is_(True))
            .order_by(User.id)
            .all()
        )


user_repository = UserRepository(User)

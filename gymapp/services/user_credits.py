import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.core.exceptions import NotFoundError, ValidationError
from gymapp.models.credit_log import CreditLog
from gymapp.models.user import FixedPlan, MonthlySubscription, User
from gymapp.repositories.class_type import class_type_repository
from gymapp.repositories.credit_log import credit_log_repository
from gymapp.repositories.user import user_repository
from gymapp.schemas.user import UserCreditState, UserPlanUpdate
from gymapp.services.credit_ledger import credit_ledger

logger = logging.getLogger(__name__)


class UserCreditService:
    """
    Administración de créditos, suscripciones mensuales, planes fijos y pase
    libre de un usuario. Cada operación confirma su propia transacción.
    """

    def get_user(self, db: Session, user_id: int) -> User:
        user = user_repository.get(db, id=user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado.")
        return user

    def list_users(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[User]:
        return db.query(User).order_by(User.id).offset(skip).limit(limit).all()

    def get_credit_state(self, db: Session, user_id: int) -> UserCreditState:
        user = self.get_user(db, user_id)
        return UserCreditState(
            user_id=user.id,
            credits_by_type=credit_ledger.balances(user),
            free_pass_from=user.free_pass_from,
            free_pass_until=user.free_pass_until,
            enrolled_class_ids=user.enrolled_class_ids,
            fixed_plans=user.fixed_plans,
            subscriptions=user.subscriptions,
        )

    def update_user_plan(
        self, db: Session, user_id: int, plan: UserPlanUpdate, admin_id: Optional[int] = None
    ) -> UserCreditState:
        """
        Ajuste manual de créditos y alta, reemplazo o baja de la suscripción
        mensual del tipo indicado.

        Con ``is_subscription`` se crea o reemplaza la suscripción (conservando
        la fecha de la última renovación); sin él se elimina si existía.
        """
        user = self.get_user(db, user_id)
        class_type = class_type_repository.get(db, id=plan.class_type_id)
        if class_type is None:
            raise NotFoundError("Tipo de clase no encontrado.")

        if plan.credits_to_add:
            credit_ledger.adjust_manual(db, user, class_type.id, plan.credits_to_add, admin_id=admin_id)

        subscription = user_repository.get_subscription(db, user_id=user.id, class_type_id=class_type.id)
        if plan.is_subscription:
            amount = plan.auto_renew_amount
            if amount is None:
                amount = subscription.auto_renew_amount if subscription else None
            if amount is None:
                amount = get_settings().DEFAULT_AUTO_RENEW_AMOUNT
            if subscription is None:
                user.subscriptions.append(MonthlySubscription(
                    class_type_id=class_type.id,
                    status=plan.subscription_status,
                    auto_renew_amount=amount,
                ))
            else:
                subscription.status = plan.subscription_status
                subscription.auto_renew_amount = amount
        elif subscription is not None:
            user.subscriptions.remove(subscription)

        db.commit()
        db.refresh(user)
        logger.info(
            f"Plan de usuario {user.id} actualizado por admin {admin_id}: tipo {class_type.id}, "
            f"créditos {plan.credits_to_add or 0}, suscripción {plan.is_subscription}"
        )
        return self.get_credit_state(db, user.id)

    def clear_user_credits(self, db: Session, user_id: int, admin_id: Optional[int] = None) -> str:
        user = self.get_user(db, user_id)
        removed = credit_ledger.clear_balances(db, user, admin_id=admin_id)
        db.commit()
        db.expire(user, ["credits"])
        logger.info(f"Créditos del usuario {user.id} eliminados por admin {admin_id} ({removed} saldos)")
        return "Todos los créditos del usuario han sido eliminados."

    def remove_subscription(self, db: Session, user_id: int, class_type_id: int) -> str:
        user = self.get_user(db, user_id)
        subscription = user_repository.get_subscription(db, user_id=user.id, class_type_id=class_type_id)
        if subscription is None:
            raise NotFoundError("Suscripción no encontrada.")
        user.subscriptions.remove(subscription)
        db.commit()
        logger.info(f"Suscripción del usuario {user.id} al tipo {class_type_id} eliminada")
        return "Suscripción eliminada."

    def set_free_pass(self, db: Session, user_id: int, free_pass_from: date, free_pass_until: date) -> UserCreditState:
        if free_pass_until < free_pass_from:
            raise ValidationError("La fecha de fin del pase libre no puede ser anterior a la de inicio.")
        user = self.get_user(db, user_id)
        user.free_pass_from = free_pass_from
        user.free_pass_until = free_pass_until
        db.commit()
        logger.info(f"Pase libre del usuario {user.id}: {free_pass_from} a {free_pass_until}")
        return self.get_credit_state(db, user.id)

    def clear_free_pass(self, db: Session, user_id: int) -> UserCreditState:
        user = self.get_user(db, user_id)
        user.free_pass_from = None
        user.free_pass_until = None
        db.commit()
        logger.info(f"Pase libre del usuario {user.id} eliminado")
        return self.get_credit_state(db, user.id)

    def remove_fixed_plan(self, db: Session, user_id: int, plan_id: int) -> str:
        """Quita la definición del plan; las inscripciones ya hechas se conservan."""
        user = self.get_user(db, user_id)
        fixed_plan: Optional[FixedPlan] = user_repository.get_fixed_plan(db, user_id=user.id, plan_id=plan_id)
        if fixed_plan is None:
            raise NotFoundError("Plan de horario fijo no encontrado.")
        user.fixed_plans.remove(fixed_plan)
        db.commit()
        logger.info(f"Plan fijo {plan_id} del usuario {user.id} eliminado")
        return "Plan de horario fijo eliminado."

    def get_credit_logs(self, db: Session, user_id: int, *, skip: int = 0, limit: int = 100) -> List[CreditLog]:
        user = self.get_user(db, user_id)
        return credit_log_repository.get_by_user(db, user_id=user.id, skip=skip, limit=limit)


user_credit_service = UserCreditService()

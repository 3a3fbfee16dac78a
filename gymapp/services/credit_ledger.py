"""
Libro de créditos por usuario.

Cada usuario tiene un saldo entero por tipo de clase. Un tipo especial
(universal) sirve para pagar cualquier clase, y el pase libre exime de
consumir créditos entre dos fechas. Todos los movimientos quedan en
``credit_logs``. Estas funciones sólo hacen flush: el commit lo decide el
servicio que orquesta la operación.
"""
import logging
from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from gymapp.core.exceptions import InsufficientCreditError, ValidationError
from gymapp.core.timezone_utils import utc_now_naive
from gymapp.models.class_type import ClassType
from gymapp.models.credit_log import CreditLogReason
from gymapp.models.schedule import ClassEnrollment, ClassInstance
from gymapp.models.user import User
from gymapp.repositories.class_type import class_type_repository
from gymapp.repositories.credit_log import credit_log_repository
from gymapp.repositories.user import user_repository

logger = logging.getLogger(__name__)


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


class CreditLedger:

    def balances(self, user: User) -> Dict[int, int]:
        return {credit.class_type_id: credit.balance for credit in user.credits}

    def get_balance(self, db: Session, user: User, class_type_id: int) -> int:
        credit = user_repository.get_credit(db, user_id=user.id, class_type_id=class_type_id)
        return credit.balance if credit else 0

    def has_free_pass_for(self, user: User, when) -> bool:
        """Pase libre vigente en ``when`` (comparación por día, ambos extremos incluidos)."""
        if not user.free_pass_from or not user.free_pass_until:
            return False
        day = _as_date(when)
        return user.free_pass_from <= day <= user.free_pass_until

    def apply(
        self,
        db: Session,
        user: User,
        class_type_id: int,
        amount: int,
        reason: CreditLogReason,
        admin_id: Optional[int] = None,
        details: Optional[str] = None
    ) -> int:
        """
        Suma ``amount`` (positivo o negativo) al saldo del tipo y registra el
        movimiento. Devuelve el nuevo saldo.
        """
        credit = user_repository.get_or_create_credit(db, user=user, class_type_id=class_type_id)
        credit.balance = (credit.balance or 0) + amount
        credit_log_repository.add_entry(
            db,
            user_id=user.id,
            admin_id=admin_id,
            amount=amount,
            class_type_id=class_type_id,
            new_balance=credit.balance,
            reason=reason,
            details=details,
        )
        db.flush()
        return credit.balance

    def adjust_manual(
        self,
        db: Session,
        user: User,
        class_type_id: int,
        amount: int,
        admin_id: Optional[int] = None
    ) -> int:
        """Ajuste manual de un administrador. Nunca puede dejar el saldo negativo."""
        current = self.get_balance(db, user, class_type_id)
        if current + amount < 0:
            raise ValidationError("La operación no puede resultar en un saldo negativo.")
        return self.apply(
            db, user, class_type_id, amount, CreditLogReason.AJUSTE_MANUAL_ADMIN,
            admin_id=admin_id, details="Ajuste manual de créditos"
        )

    def resolve_debit(self, db: Session, user: User, instance: ClassInstance) -> Optional[int]:
        """
        Tipo de crédito a debitar para inscribir a ``user`` en ``instance``:
        ninguno si el pase libre cubre la fecha, si no el tipo propio de la
        clase y, en último caso, el universal.

        Raises:
            InsufficientCreditError: sin pase libre ni créditos utilizables.
        """
        if self.has_free_pass_for(user, instance.date):
            return None

        class_type = instance.class_type
        if self.get_balance(db, user, class_type.id) > 0:
            return class_type.id

        universal = class_type_repository.get_universal(db)
        if universal is not None and self.get_balance(db, user, universal.id) > 0:
            return universal.id

        if user.free_pass_until and user.free_pass_until < _as_date(instance.date):
            raise InsufficientCreditError(
                f"Tu pase libre vence el {user.free_pass_until:%d/%m/%Y}, antes de esta clase, "
                f"y no tienes créditos para \"{class_type.name}\" ni créditos universales."
            )
        raise InsufficientCreditError(
            f"No tienes créditos disponibles para \"{class_type.name}\" ni créditos universales."
        )

    def debit_for_enrollment(self, db: Session, user: User, instance: ClassInstance, credit_type_id: int) -> int:
        return self.apply(
            db, user, credit_type_id, -1, CreditLogReason.INSCRIPCION_CLASE,
            details=f"Inscripción a '{instance.name}' del {instance.date:%d/%m/%Y} ({instance.start_time})"
        )

    def refund_type_for(self, user: User, instance: ClassInstance, enrollment: ClassEnrollment) -> Optional[int]:
        """
        Tipo a reembolsar por una inscripción: el debitado si quedó registrado;
        nada si no consumió crédito; para inscripciones sin registro (datos
        migrados) el tipo nominal de la clase, salvo que un pase libre cubra la fecha.
        """
        if enrollment.credit_type_id is not None:
            return enrollment.credit_type_id
        if enrollment.credit_exempt:
            return None
        if self.has_free_pass_for(user, instance.date):
            return None
        return instance.class_type_id

    def refund_enrollment(
        self,
        db: Session,
        user: User,
        instance: ClassInstance,
        enrollment: ClassEnrollment,
        reason: CreditLogReason,
        admin_id: Optional[int] = None
    ) -> Optional[int]:
        """Reembolsa 1 crédito del tipo correcto. Devuelve el tipo reembolsado o None."""
        class_type_id = self.refund_type_for(user, instance, enrollment)
        if class_type_id is None:
            return None
        self.apply(
            db, user, class_type_id, 1, reason, admin_id=admin_id,
            details=f"Reembolso por '{instance.name}' del {instance.date:%d/%m/%Y} ({instance.start_time})"
        )
        return class_type_id

    def available_credits(self, class_type: ClassType, assigned: int) -> int:
        return max(0, (class_type.total_credits or 0) - assigned)

    def renew_subscriptions(self, db: Session, now: Optional[datetime] = None):
        """
        Acredita ``auto_renew_amount`` a cada suscripción automática que no se
        renovó en el mes en curso. Idempotente por mes.

        Returns:
            Lista de suscripciones renovadas
        """
        now = now or utc_now_naive()
        month_start = datetime(now.year, now.month, 1)
        renewed = []
        for subscription in user_repository.get_automatic_subscriptions(db):
            if subscription.last_renewal_date and subscription.last_renewal_date >= month_start:
                continue
            if subscription.auto_renew_amount > 0:
                self.apply(
                    db, subscription.user, subscription.class_type_id, subscription.auto_renew_amount,
                    CreditLogReason.RENOVACION_SUSCRIPCION,
                    details=f"Renovación automática {now:%m/%Y}"
                )
            subscription.last_renewal_date = now
            renewed.append(subscription)
        db.flush()
        return renewed

    def clear_balances(self, db: Session, user: User, admin_id: Optional[int] = None) -> int:
        """Elimina todos los saldos del usuario con un movimiento negativo por cada saldo no nulo."""
        removed = user_repository.delete_credits(db, user_id=user.id)
        for credit in removed:
            if credit.balance:
                credit_log_repository.add_entry(
                    db,
                    user_id=user.id,
                    admin_id=admin_id,
                    amount=-credit.balance,
                    class_type_id=credit.class_type_id,
                    new_balance=0,
                    reason=CreditLogReason.AJUSTE_MANUAL_ADMIN,
                    details="Eliminación de todos los créditos",
                )
        db.flush()
        return len(removed)

    def reset_monthly_credits(self, db: Session) -> int:
        """Elimina los saldos de los tipos con reinicio mensual. Devuelve cuántos saldos se borraron."""
        class_types = class_type_repository.get_reset_monthly(db)
        removed = user_repository.delete_credits_of_types(db, class_type_ids=[ct.id for ct in class_types])
        for credit in removed:
            if credit.balance:
                credit_log_repository.add_entry(
                    db,
                    user_id=credit.user_id,
                    amount=-credit.balance,
                    class_type_id=credit.class_type_id,
                    new_balance=0,
                    reason=CreditLogReason.INICIALIZACION,
                    details="Reinicio mensual de créditos",
                )
        db.flush()
        return len(removed)


credit_ledger = CreditLedger()

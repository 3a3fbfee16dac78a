from datetime import date

import pytest

from gymapp.core.exceptions import NotFoundError, ValidationError
from gymapp.models.credit_log import CreditLog, CreditLogReason
from gymapp.models.user import FixedPlan, MonthlySubscription, SubscriptionStatus
from gymapp.schemas.user import UserPlanUpdate
from gymapp.services.user_credits import user_credit_service


class TestUpdatePlan:
    def test_adds_credits_and_creates_subscription(self, db, make_user, admin_user, yoga):
        user = make_user(credits={yoga.id: 1})

        state = user_credit_service.update_user_plan(
            db, user.id,
            UserPlanUpdate(class_type_id=yoga.id, credits_to_add=4, is_subscription=True, auto_renew_amount=12),
            admin_id=admin_user.id
        )

        assert state.credits_by_type == {yoga.id: 5}
        [subscription] = state.subscriptions
        assert subscription.status == SubscriptionStatus.AUTOMATICA
        assert subscription.auto_renew_amount == 12

    def test_replacing_keeps_amount_when_not_given(self, db, make_user, yoga):
        user = make_user()
        user_credit_service.update_user_plan(
            db, user.id, UserPlanUpdate(class_type_id=yoga.id, is_subscription=True, auto_renew_amount=6)
        )

        state = user_credit_service.update_user_plan(
            db, user.id,
            UserPlanUpdate(class_type_id=yoga.id, is_subscription=True, subscription_status=SubscriptionStatus.MANUAL)
        )

        [subscription] = state.subscriptions
        assert subscription.status == SubscriptionStatus.MANUAL
        assert subscription.auto_renew_amount == 6
        assert db.query(MonthlySubscription).count() == 1

    def test_default_amount(self, db, make_user, yoga):
        user = make_user()
        state = user_credit_service.update_user_plan(
            db, user.id, UserPlanUpdate(class_type_id=yoga.id, is_subscription=True)
        )
        assert state.subscriptions[0].auto_renew_amount == 8

    def test_without_subscription_flag_removes_it(self, db, make_user, yoga):
        user = make_user()
        user_credit_service.update_user_plan(db, user.id, UserPlanUpdate(class_type_id=yoga.id, is_subscription=True))

        state = user_credit_service.update_user_plan(db, user.id, UserPlanUpdate(class_type_id=yoga.id))

        assert state.subscriptions == []

    def test_negative_result_is_rejected(self, db, make_user, yoga):
        user = make_user(credits={yoga.id: 2})
        with pytest.raises(ValidationError):
            user_credit_service.update_user_plan(
                db, user.id, UserPlanUpdate(class_type_id=yoga.id, credits_to_add=-3)
            )

    def test_unknown_class_type(self, db, make_user):
        with pytest.raises(NotFoundError):
            user_credit_service.update_user_plan(db, make_user().id, UserPlanUpdate(class_type_id=999))


class TestRemovals:
    def test_clear_credits_logs_each_removed_balance(self, db, make_user, admin_user, yoga, universal_type):
        user = make_user(credits={yoga.id: 3, universal_type.id: 1})

        user_credit_service.clear_user_credits(db, user.id, admin_id=admin_user.id)

        assert user_credit_service.get_credit_state(db, user.id).credits_by_type == {}
        logs = db.query(CreditLog).filter(CreditLog.user_id == user.id).all()
        assert {(log.class_type_id, log.amount, log.new_balance) for log in logs} == {
            (yoga.id, -3, 0), (universal_type.id, -1, 0)
        }
        assert {log.reason for log in logs} == {CreditLogReason.AJUSTE_MANUAL_ADMIN}
        assert {log.admin_id for log in logs} == {admin_user.id}

    def test_remove_missing_subscription(self, db, make_user, yoga):
        with pytest.raises(NotFoundError):
            user_credit_service.remove_subscription(db, make_user().id, yoga.id)

    def test_remove_fixed_plan_keeps_enrollments(self, db, make_user, yoga):
        user = make_user()
        plan = FixedPlan(
            user_id=user.id, class_type_id=yoga.id, weekdays=["Lunes"], start_time="18:00",
            end_time="19:00", start_date=date(2030, 1, 1), end_date=date(2030, 1, 31)
        )
        db.add(plan)
        db.commit()

        message = user_credit_service.remove_fixed_plan(db, user.id, plan.id)

        assert message == "Plan de horario fijo eliminado."
        assert db.query(FixedPlan).count() == 0
        with pytest.raises(NotFoundError):
            user_credit_service.remove_fixed_plan(db, user.id, 999)


class TestFreePass:
    def test_set_and_clear(self, db, make_user):
        user = make_user()

        state = user_credit_service.set_free_pass(db, user.id, date(2030, 3, 1), date(2030, 3, 31))
        assert state.free_pass_until == date(2030, 3, 31)

        state = user_credit_service.clear_free_pass(db, user.id)
        assert state.free_pass_from is None
        assert state.free_pass_until is None

    def test_inverted_range(self, db, make_user):
        with pytest.raises(ValidationError):
            user_credit_service.set_free_pass(db, make_user().id, date(2030, 3, 31), date(2030, 3, 1))

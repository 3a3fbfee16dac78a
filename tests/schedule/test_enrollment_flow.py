from datetime import date, datetime, timezone

import pytest

from gymapp.core.exceptions import InsufficientCreditError, NotFoundError, StateConflictError
from gymapp.models.credit_log import CreditLog, CreditLogReason
from gymapp.models.gym_settings import GymSettings
from gymapp.models.notification import Notification
from gymapp.models.schedule import ClassEnrollment, ClassInstanceStatus
from gymapp.models.user import FixedPlan
from gymapp.schemas.schedule import PlanEnrollmentRequest
from gymapp.services.credit_ledger import credit_ledger
from gymapp.services.enrollment import enrollment_service

CLASS_DAY = date(2030, 5, 10)
# 18:00 en Buenos Aires (UTC-3) son las 21:00 UTC
WELL_BEFORE = datetime(2030, 5, 10, 15, 0, tzinfo=timezone.utc)
TOO_LATE = datetime(2030, 5, 10, 20, 30, tzinfo=timezone.utc)


class TestSelfEnrollment:
    def test_last_seat_round_trip(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=1)
        alice = make_user(credits={yoga.id: 3})
        bob = make_user(credits={yoga.id: 3})

        result = enrollment_service.enroll(db, instance.id, alice)
        assert result["credit_type_id"] == yoga.id
        assert result["class_instance"].status == ClassInstanceStatus.LLENA
        assert credit_ledger.get_balance(db, alice, yoga.id) == 2

        with pytest.raises(StateConflictError):
            enrollment_service.enroll(db, instance.id, bob)
        assert credit_ledger.get_balance(db, bob, yoga.id) == 3

        result = enrollment_service.unenroll(db, instance.id, alice, now=WELL_BEFORE)
        assert result["class_instance"].status == ClassInstanceStatus.ACTIVA
        assert result["class_instance"].enrolled_user_ids == []
        assert credit_ledger.get_balance(db, alice, yoga.id) == 3

        result = enrollment_service.enroll(db, instance.id, bob)
        assert result["class_instance"].enrolled_user_ids == [bob.id]
        assert credit_ledger.get_balance(db, bob, yoga.id) == 2

    def test_refund_returns_the_universal_credit(self, db, make_user, yoga, universal_type, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user(credits={universal_type.id: 1})

        result = enrollment_service.enroll(db, instance.id, user)
        assert result["credit_type_id"] == universal_type.id
        assert result["class_instance"].enrollment_details == [
            {"user_id": user.id, "credit_type_id": universal_type.id}
        ]

        result = enrollment_service.unenroll(db, instance.id, user, now=WELL_BEFORE)
        assert result["credit_type_id"] == universal_type.id
        assert credit_ledger.get_balance(db, user, universal_type.id) == 1
        assert credit_ledger.get_balance(db, user, yoga.id) == 0

        reasons = [
            log.reason for log in db.query(CreditLog).filter(CreditLog.user_id == user.id).order_by(CreditLog.id)
        ]
        assert reasons == [CreditLogReason.INSCRIPCION_CLASE, CreditLogReason.REEMBOLSO_ANULACION]

    def test_free_pass_consumes_nothing(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user(free_pass_from=date(2030, 5, 1), free_pass_until=date(2030, 5, 31), credits={yoga.id: 2})

        result = enrollment_service.enroll(db, instance.id, user)

        assert result["credit_type_id"] is None
        assert credit_ledger.get_balance(db, user, yoga.id) == 2
        enrollment = db.query(ClassEnrollment).one()
        assert enrollment.credit_exempt is True

        result = enrollment_service.unenroll(db, instance.id, user, now=WELL_BEFORE)
        assert result["credit_type_id"] is None
        assert credit_ledger.get_balance(db, user, yoga.id) == 2

    def test_without_credits_nothing_changes(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user()

        with pytest.raises(InsufficientCreditError):
            enrollment_service.enroll(db, instance.id, user)

        db.refresh(instance)
        assert instance.enrolled_user_ids == []
        assert db.query(CreditLog).count() == 0

    def test_double_enrollment_is_a_conflict(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user(credits={yoga.id: 2})
        enrollment_service.enroll(db, instance.id, user)

        with pytest.raises(StateConflictError):
            enrollment_service.enroll(db, instance.id, user)
        assert credit_ledger.get_balance(db, user, yoga.id) == 1

    def test_cancelled_class_is_not_enrollable(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, status=ClassInstanceStatus.CANCELADA)
        user = make_user(credits={yoga.id: 1})
        with pytest.raises(StateConflictError):
            enrollment_service.enroll(db, instance.id, user)

    def test_missing_class(self, db, make_user):
        with pytest.raises(NotFoundError):
            enrollment_service.enroll(db, 12345, make_user())


class TestUnenrollDeadline:
    def test_unenroll_inside_cutoff_is_rejected(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user(credits={yoga.id: 1})
        enrollment_service.enroll(db, instance.id, user)

        with pytest.raises(StateConflictError) as exc_info:
            enrollment_service.unenroll(db, instance.id, user, now=TOO_LATE)

        assert "una hora" in exc_info.value.message
        assert "17:00" in exc_info.value.message
        assert credit_ledger.get_balance(db, user, yoga.id) == 0

    def test_cutoff_comes_from_gym_settings(self, db, make_user, yoga, make_instance):
        gym_settings = db.query(GymSettings).one()
        gym_settings.unenroll_cutoff_minutes = 15
        db.commit()

        instance = make_instance(yoga, day=CLASS_DAY)
        user = make_user(credits={yoga.id: 1})
        enrollment_service.enroll(db, instance.id, user)

        # 20:30 UTC son 30 minutos antes del inicio
        enrollment_service.unenroll(db, instance.id, user, now=TOO_LATE)
        assert credit_ledger.get_balance(db, user, yoga.id) == 1

    def test_unenroll_when_not_enrolled(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY)
        with pytest.raises(StateConflictError):
            enrollment_service.unenroll(db, instance.id, make_user(), now=WELL_BEFORE)


class TestWaitlist:
    def test_waitlisted_users_are_notified_when_a_seat_opens(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=1)
        alice = make_user(credits={yoga.id: 1})
        bob = make_user()
        enrollment_service.enroll(db, instance.id, alice)

        updated = enrollment_service.subscribe_to_waitlist(db, instance.id, bob)
        assert updated.waitlist_user_ids == [bob.id]
        # repetir no duplica
        updated = enrollment_service.subscribe_to_waitlist(db, instance.id, bob)
        assert updated.waitlist_user_ids == [bob.id]

        enrollment_service.unenroll(db, instance.id, alice, now=WELL_BEFORE)

        notification = db.query(Notification).filter(Notification.user_id == bob.id).one()
        assert notification.type == "lugar_disponible"
        db.refresh(instance)
        # avisar no inscribe
        assert instance.enrolled_user_ids == []
        assert instance.waitlist_user_ids == [bob.id]

    def test_waitlist_requires_a_full_class(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=5)
        with pytest.raises(StateConflictError):
            enrollment_service.subscribe_to_waitlist(db, instance.id, make_user())

    def test_leave_waitlist(self, db, make_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=0)
        user = make_user()
        enrollment_service.subscribe_to_waitlist(db, instance.id, user)

        updated = enrollment_service.unsubscribe_from_waitlist(db, instance.id, user)

        assert updated.waitlist_user_ids == []


class TestAdminEnrollment:
    def test_admin_add_without_charge_and_remove(self, db, make_user, admin_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=1)
        user = make_user(credits={yoga.id: 1})

        result = enrollment_service.admin_add_user(
            db, instance.id, user.id, charge_credit=False, admin_id=admin_user.id
        )
        assert result["credit_type_id"] is None
        assert result["class_instance"].status == ClassInstanceStatus.LLENA
        assert credit_ledger.get_balance(db, user, yoga.id) == 1

        result = enrollment_service.admin_remove_user(db, instance.id, user.id, admin_id=admin_user.id)
        assert result["credit_type_id"] is None
        assert result["class_instance"].status == ClassInstanceStatus.ACTIVA
        assert credit_ledger.get_balance(db, user, yoga.id) == 1

    def test_admin_add_removes_user_from_waitlist(self, db, make_user, admin_user, yoga, make_instance):
        instance = make_instance(yoga, day=CLASS_DAY, capacity=1)
        first = make_user(credits={yoga.id: 1})
        waiting = make_user(credits={yoga.id: 1})
        enrollment_service.enroll(db, instance.id, first)
        enrollment_service.subscribe_to_waitlist(db, instance.id, waiting)
        enrollment_service.admin_remove_user(db, instance.id, first.id, admin_id=admin_user.id)

        result = enrollment_service.admin_add_user(db, instance.id, waiting.id, admin_id=admin_user.id)

        assert result["credit_type_id"] == yoga.id
        assert result["class_instance"].waitlist_user_ids == []
        assert credit_ledger.get_balance(db, first, yoga.id) == 1

    def test_admin_remove_ignores_the_deadline(self, db, make_user, admin_user, yoga, make_instance):
        instance = make_instance(yoga, day=date.today())
        user = make_user(credits={yoga.id: 1})
        enrollment_service.enroll(db, instance.id, user)

        enrollment_service.admin_remove_user(db, instance.id, user.id, admin_id=admin_user.id)

        assert credit_ledger.get_balance(db, user, yoga.id) == 1
        log = db.query(CreditLog).filter(CreditLog.reason == CreditLogReason.REEMBOLSO_CANCELACION_ADMIN).one()
        assert log.admin_id == admin_user.id


class TestFixedPlan:
    def _plan(self, user, class_type, **kwargs):
        data = dict(
            user_id=user.id, class_type_id=class_type.id, weekdays=["Lunes"],
            start_date=date(2030, 1, 1), end_date=date(2030, 1, 31), start_time="18:00"
        )
        data.update(kwargs)
        return PlanEnrollmentRequest(**data)

    def test_available_slots(self, db, yoga, make_instance):
        make_instance(yoga, day=date(2030, 1, 7), start_time="18:00", end_time="19:00")
        make_instance(yoga, day=date(2030, 1, 14), start_time="08:00", end_time="09:00")
        make_instance(yoga, day=date(2030, 1, 14), start_time="18:00", end_time="19:00")
        make_instance(yoga, day=date(2030, 1, 8), start_time="12:00", end_time="13:00")  # martes

        slots = enrollment_service.get_available_slots_for_plan(
            db, yoga.id, ["lunes"], date(2030, 1, 1), date(2030, 1, 31)
        )

        assert slots == [
            {"start_time": "08:00", "end_time": "09:00"},
            {"start_time": "18:00", "end_time": "19:00"},
        ]

    def test_plan_enrolls_every_matching_class_without_credits(self, db, make_user, admin_user, yoga, make_instance):
        for day in (7, 14, 21, 28):
            make_instance(yoga, day=date(2030, 1, day))
        user = make_user()

        result = enrollment_service.subscribe_user_to_plan(db, self._plan(user, yoga), admin_id=admin_user.id)

        assert result["enrolled"] == 4
        assert db.query(ClassEnrollment).filter(ClassEnrollment.user_id == user.id).count() == 4
        assert db.query(CreditLog).count() == 0
        plan = db.get(FixedPlan, result["plan_id"])
        assert plan.weekdays == ["Lunes"]
        assert plan.end_time == "19:00"

    def test_plan_is_all_or_nothing(self, db, make_user, admin_user, yoga, make_instance):
        first = make_instance(yoga, day=date(2030, 1, 7))
        taken = make_instance(yoga, day=date(2030, 1, 14))
        user = make_user(credits={yoga.id: 1})
        enrollment_service.enroll(db, taken.id, user)

        with pytest.raises(StateConflictError):
            enrollment_service.subscribe_user_to_plan(db, self._plan(user, yoga), admin_id=admin_user.id)

        db.refresh(first)
        assert first.enrolled_user_ids == []
        assert db.query(ClassEnrollment).filter(ClassEnrollment.user_id == user.id).count() == 1
        assert db.query(FixedPlan).count() == 0

    def test_plan_without_matching_classes(self, db, make_user, admin_user, yoga):
        with pytest.raises(NotFoundError):
            enrollment_service.subscribe_user_to_plan(db, self._plan(make_user(), yoga), admin_id=admin_user.id)

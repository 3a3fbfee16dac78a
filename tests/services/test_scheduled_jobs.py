from datetime import date, datetime, timezone
from unittest.mock import patch

from gymapp.core import scheduler
from gymapp.db.tenant_registry import tenant_registry
from gymapp.models.credit_log import CreditLog, CreditLogReason
from gymapp.models.gym_settings import GymSettings
from gymapp.models.notification import Notification
from gymapp.models.schedule import ClassInstance, ClassInstanceStatus, EnrollmentKind
from gymapp.models.user import MonthlySubscription, SubscriptionStatus, User
from gymapp.services import scheduled_jobs
from gymapp.services.credit_ledger import credit_ledger
from gymapp.services.enrollment import enrollment_service


def subscribe(db, user, class_type, amount=8, status=SubscriptionStatus.AUTOMATICA):
    db.add(MonthlySubscription(
        user_id=user.id, class_type_id=class_type.id, status=status, auto_renew_amount=amount
    ))
    db.commit()


class TestMonthlyCreditReset:
    def test_reset_then_renew_and_remind(self, db, make_user, make_class_type, push_mock):
        pase = make_class_type(name="Pase Libre Mensual", reset_monthly=True)
        user = make_user(credits={pase.id: 3})
        subscribe(db, user, pase, amount=8)

        renewed = scheduled_jobs.run_monthly_credit_reset(db, now=datetime(2030, 3, 1, 3, 0))

        assert renewed == 1
        # los 3 restantes se borran y se acreditan 8 nuevos
        assert credit_ledger.get_balance(db, user, pase.id) == 8
        reasons = [log.reason for log in db.query(CreditLog).order_by(CreditLog.id)]
        assert reasons == [CreditLogReason.INICIALIZACION, CreditLogReason.RENOVACION_SUSCRIPCION]

        notification = db.query(Notification).filter(Notification.user_id == user.id).one()
        assert notification.type == "monthly_payment_reminder"
        assert notification.is_important is True
        assert "Pase Libre Mensual" in notification.message
        assert push_mock.call_count == 1

        assert db.query(GymSettings).one().last_credit_reset_month == "2030-03"

    def test_second_run_in_the_same_month_changes_nothing(self, db, make_user, make_class_type):
        pase = make_class_type(name="Pase", reset_monthly=True)
        user = make_user()
        subscribe(db, user, pase, amount=4)

        scheduled_jobs.run_monthly_credit_reset(db, now=datetime(2030, 3, 1, 3, 0))
        renewed = scheduled_jobs.run_monthly_credit_reset(db, now=datetime(2030, 3, 1, 9, 0))

        assert renewed == 0
        assert credit_ledger.get_balance(db, user, pase.id) == 4
        assert db.query(Notification).count() == 1

    def test_zero_amount_renews_without_reminder(self, db, make_user, yoga):
        user = make_user()
        subscribe(db, user, yoga, amount=0)

        assert scheduled_jobs.run_monthly_credit_reset(db, now=datetime(2030, 3, 1)) == 1
        assert db.query(Notification).count() == 0


class TestMonthlyClassGeneration:
    def test_skips_when_next_month_already_generated(self, db, yoga, make_instance):
        make_instance(yoga, day=date(2030, 1, 7), kind=EnrollmentKind.FIJO, recurrence_rule="serie")
        gym_settings = db.query(GymSettings).one()
        gym_settings.last_class_generation_month = "2030-02"
        db.commit()

        assert scheduled_jobs.run_monthly_class_generation(db, today=date(2030, 1, 31)) == 0
        assert db.query(ClassInstance).count() == 1

    def test_generates_next_month(self, db, yoga, make_instance):
        make_instance(yoga, day=date(2030, 1, 7), kind=EnrollmentKind.FIJO, recurrence_rule="serie")

        # lunes de febrero de 2030: 4, 11, 18 y 25
        assert scheduled_jobs.run_monthly_class_generation(db, today=date(2030, 1, 31)) == 4


class TestFreePassNotices:
    def test_notifies_users_whose_pass_ends_tomorrow(self, db, make_user):
        ending = make_user(free_pass_from=date(2030, 3, 1), free_pass_until=date(2030, 3, 11))
        make_user(free_pass_from=date(2030, 3, 1), free_pass_until=date(2030, 3, 20))

        sent = scheduled_jobs.run_free_pass_expiration_notices(db, today=date(2030, 3, 10))

        assert sent == 1
        notification = db.query(Notification).one()
        assert notification.user_id == ending.id
        assert notification.type == "free_pass_expiration"
        assert "11/03/2030" in notification.message

    def test_runs_once_per_day(self, db, make_user):
        make_user(free_pass_from=date(2030, 3, 1), free_pass_until=date(2030, 3, 11))

        scheduled_jobs.run_free_pass_expiration_notices(db, today=date(2030, 3, 10))
        assert scheduled_jobs.run_free_pass_expiration_notices(db, today=date(2030, 3, 10)) == 0
        assert db.query(Notification).count() == 1


class TestClassReminders:
    # 19:00 UTC son las 16:00 en Buenos Aires: la clase de las 18:00 empieza en dos horas
    NOW = datetime(2030, 5, 10, 19, 0, tzinfo=timezone.utc)

    def test_reminds_users_of_classes_two_hours_ahead(self, db, make_user, yoga, make_instance, push_mock):
        soon = make_instance(yoga, day=date(2030, 5, 10), start_time="18:00", end_time="19:00", name="Yoga")
        later = make_instance(yoga, day=date(2030, 5, 10), start_time="19:00", end_time="20:00")
        user = make_user(credits={yoga.id: 2})
        enrollment_service.enroll(db, soon.id, user)
        enrollment_service.enroll(db, later.id, user)
        soon_id = soon.id

        sent = scheduled_jobs.run_class_reminders(db, now=self.NOW)

        assert sent == 1
        notification = db.query(Notification).one()
        assert notification.user_id == user.id
        assert notification.type == "class_reminder_2hr"
        assert notification.related_class_id == soon_id
        assert notification.is_important is True
        assert "Yoga" in notification.message and "18:00" in notification.message
        assert push_mock.call_count == 1

    def test_each_user_is_reminded_once_per_class(self, db, make_user, yoga, make_instance):
        full_class = make_instance(yoga, day=date(2030, 5, 10), start_time="18:30", end_time="19:30", capacity=1)
        enrollment_service.enroll(db, full_class.id, make_user(credits={yoga.id: 1}))

        assert scheduled_jobs.run_class_reminders(db, now=self.NOW) == 1
        assert scheduled_jobs.run_class_reminders(db, now=self.NOW) == 0
        assert db.query(Notification).count() == 1

    def test_cancelled_classes_are_skipped(self, db, make_user, yoga, make_instance):
        make_instance(yoga, day=date(2030, 5, 10), start_time="18:00", status=ClassInstanceStatus.CANCELADA)

        assert scheduled_jobs.run_class_reminders(db, now=self.NOW) == 0

class TestNotificationCleanup:
    def test_only_old_read_notifications_are_deleted(self, db, make_user):
        user = make_user()
        db.add_all([
            Notification(user_id=user.id, title="a", message="leída vieja", is_read=True,
                         created_at=datetime(2030, 1, 1)),
            Notification(user_id=user.id, title="b", message="no leída vieja", is_read=False,
                         created_at=datetime(2030, 1, 1)),
            Notification(user_id=user.id, title="c", message="leída reciente", is_read=True,
                         created_at=datetime(2030, 3, 25)),
        ])
        db.commit()

        deleted = scheduled_jobs.run_notification_cleanup(db, now=datetime(2030, 4, 1))

        assert deleted == 1
        assert {n.title for n in db.query(Notification).all()} == {"b", "c"}


class TestRunForAllTenants:
    def test_failing_tenant_is_skipped(self, tenant):
        with patch.object(tenant_registry, "client_ids", return_value=[tenant.client_id, "gym-desconocido"]):
            results = scheduler.run_for_all_tenants("contar_usuarios", lambda db: db.query(User).count())

        assert results == {tenant.client_id: 0, "gym-desconocido": None}

    def test_job_error_does_not_stop_other_tenants(self, tenant):
        other = tenant_registry.register("gym-otro", "sqlite:///:memory:")
        calls = []

        def job(db):
            calls.append(db.get_bind() is other.engine)
            if db.get_bind() is tenant.engine:
                raise RuntimeError("falla")
            return "ok"

        with patch.object(tenant_registry, "client_ids", return_value=[tenant.client_id, "gym-otro"]):
            results = scheduler.run_for_all_tenants("job", job)

        assert results == {tenant.client_id: None, "gym-otro": "ok"}
        assert calls == [False, True]

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from gymapp.core.auth import get_current_user
from gymapp.core.tenant import get_tenant_db
from gymapp.core.timezone_utils import to_class_date
from gymapp.db.redis_client import get_redis_client
from gymapp.db.tenant_registry import tenant_registry
from gymapp.main import app
from gymapp.models.class_type import ClassType
from gymapp.models.schedule import ClassInstance, ClassInstanceStatus, EnrollmentKind
from gymapp.models.user import User, UserCredit, UserRole
from gymapp.services import recurrence
from gymapp.services.notification_service import push_service

TEST_CLIENT_ID = "gym-test"


@pytest.fixture(scope="function")
def tenant():
    """
    Tenant nuevo por test sobre SQLite en memoria. El registro crea las
    tablas, el tipo universal y la configuración del gimnasio.
    """
    tenant = tenant_registry.register(TEST_CLIENT_ID, "sqlite:///:memory:")
    yield tenant
    tenant_registry.dispose_all()


@pytest.fixture(scope="function")
def db(tenant):
    session = tenant.session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def push_mock():
    """Ningún test envía push reales"""
    with patch.object(push_service, "send_to_users", return_value={"success": True}) as mock:
        yield mock


@pytest.fixture(scope="function")
def client(db):
    """
    Cliente de prueba que comparte la sesión del test. El usuario actual se
    elige con ``login``; Redis no está disponible (lecturas sin caché).
    """
    def override_get_db():
        yield db

    async def override_get_redis():
        yield None

    app.dependency_overrides[get_tenant_db] = override_get_db
    app.dependency_overrides[get_redis_client] = override_get_redis
    c = TestClient(app, headers={"X-Client-ID": TEST_CLIENT_ID})
    yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def login():
    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user
        return user
    return _login


@pytest.fixture(scope="function")
def make_user(db):
    counter = {"n": 0}

    def _make_user(roles=None, credits=None, **kwargs) -> User:
        counter["n"] += 1
        user = User(
            first_name=kwargs.pop("first_name", f"Usuario{counter['n']}"),
            last_name=kwargs.pop("last_name", "Test"),
            email=kwargs.pop("email", f"user{counter['n']}@test.com"),
            roles=[r.value for r in (roles or [UserRole.CLIENTE])],
            **kwargs
        )
        db.add(user)
        db.flush()
        for class_type_id, balance in (credits or {}).items():
            db.add(UserCredit(user_id=user.id, class_type_id=class_type_id, balance=balance))
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user(roles=[UserRole.ADMIN], email="admin@test.com")


@pytest.fixture(scope="function")
def teacher_user(make_user):
    return make_user(roles=[UserRole.PROFESOR], email="profe@test.com")


@pytest.fixture(scope="function")
def universal_type(db):
    return db.query(ClassType).filter(ClassType.is_universal.is_(True)).one()


@pytest.fixture(scope="function")
def make_class_type(db):
    def _make_class_type(name="Funcional", reset_monthly=False, **kwargs) -> ClassType:
        class_type = ClassType(name=name, reset_monthly=reset_monthly, total_credits=0, **kwargs)
        db.add(class_type)
        db.commit()
        db.refresh(class_type)
        return class_type
    return _make_class_type


@pytest.fixture(scope="function")
def yoga(make_class_type):
    return make_class_type(name="Yoga")


@pytest.fixture(scope="function")
def make_instance(db):
    def _make_instance(
        class_type: ClassType,
        day: date = None,
        capacity: int = 10,
        start_time: str = "18:00",
        end_time: str = "19:00",
        name: str = "Turno",
        kind: EnrollmentKind = EnrollmentKind.LIBRE,
        recurrence_rule: str = None,
        status: ClassInstanceStatus = ClassInstanceStatus.ACTIVA,
        teacher_id: int = None,
    ) -> ClassInstance:
        day = day or (date.today() + timedelta(days=7))
        class_date = to_class_date(day)
        instance = ClassInstance(
            name=name,
            class_type_id=class_type.id,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            date=class_date,
            weekdays=[recurrence.weekday_label(class_date)],
            enrollment_kind=kind,
            recurrence_rule=recurrence_rule,
            status=status,
            teacher_id=teacher_id,
        )
        db.add(instance)
        class_type.total_credits = (class_type.total_credits or 0) + capacity
        db.commit()
        db.refresh(instance)
        return instance
    return _make_instance

# Importar todos los modelos para que create_all los registre en cada tenant
from gymapp.db.base_class import Base  # noqa
from gymapp.models.gym_settings import GymSettings  # noqa
from gymapp.models.class_type import ClassType  # noqa
from gymapp.models.user import User, UserCredit, FixedPlan, MonthlySubscription  # noqa
from gymapp.models.schedule import ClassInstance, ClassEnrollment, ClassWaitlistEntry  # noqa
from gymapp.models.credit_log import CreditLog  # noqa
from gymapp.models.notification import Notification  # noqa

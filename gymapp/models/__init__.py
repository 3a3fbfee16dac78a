from gymapp.models.gym_settings import GymSettings
from gymapp.models.class_type import ClassType
from gymapp.models.user import User, UserRole, UserCredit, FixedPlan, MonthlySubscription, SubscriptionStatus
from gymapp.models.schedule import (
    ClassInstance,
    ClassEnrollment,
    ClassWaitlistEntry,
    ClassInstanceStatus,
    EnrollmentKind,
)
from gymapp.models.credit_log import CreditLog, CreditLogReason
from gymapp.models.notification import Notification

from typing import Optional, List, Dict
import datetime as dt

from pydantic import BaseModel, Field, model_validator

from gymapp.models.credit_log import CreditLogReason
from gymapp.models.user import SubscriptionStatus


class UserBasic(BaseModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    roles: List[str] = []

    model_config = {"from_attributes": True}


class MonthlySubscription(BaseModel):
    id: int
    class_type_id: int
    status: SubscriptionStatus
    auto_renew_amount: int
    last_renewal_date: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class FixedPlan(BaseModel):
    id: int
    class_type_id: int
    weekdays: List[str]
    start_time: str
    end_time: str
    start_date: dt.date
    end_date: dt.date

    model_config = {"from_attributes": True}


class UserCreditState(BaseModel):
    """Estado de créditos de un usuario; las claves del mapa son ids de tipo de clase"""
    user_id: int
    credits_by_type: Dict[int, int] = {}
    free_pass_from: Optional[dt.date] = None
    free_pass_until: Optional[dt.date] = None
    enrolled_class_ids: List[int] = []
    fixed_plans: List[FixedPlan] = []
    subscriptions: List[MonthlySubscription] = []


class UserPlanUpdate(BaseModel):
    class_type_id: int
    credits_to_add: Optional[int] = None
    is_subscription: bool = False
    auto_renew_amount: Optional[int] = Field(None, ge=0)
    # Cuando is_subscription es True: automatica (renovación mensual) o manual
    subscription_status: SubscriptionStatus = SubscriptionStatus.AUTOMATICA


class FreePassUpdate(BaseModel):
    free_pass_from: dt.date
    free_pass_until: dt.date

    @model_validator(mode='after')
    def check_range(self):
        if self.free_pass_until < self.free_pass_from:
            raise ValueError("La fecha de fin del pase libre no puede ser anterior a la de inicio.")
        return self


class CreditLog(BaseModel):
    id: int
    user_id: int
    admin_id: Optional[int] = None
    amount: int
    class_type_id: Optional[int] = None
    new_balance: int
    reason: CreditLogReason
    details: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    message: str

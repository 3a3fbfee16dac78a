from typing import Optional, List
import datetime as dt

from pydantic import BaseModel, Field, field_validator, model_validator

from gymapp.models.schedule import ClassInstanceStatus, EnrollmentKind

TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def _check_time_window(start_time: Optional[str], end_time: Optional[str]):
    if start_time and end_time and end_time <= start_time:
        raise ValueError("La hora de fin debe ser posterior a la hora de inicio.")


# ClassInstance schemas
class ClassInstanceBase(BaseModel):
    name: str = Field("Turno", min_length=1, max_length=150)
    class_type_id: int
    start_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN, description="HH:MM en hora local del gimnasio")
    end_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN)
    capacity: int = Field(..., ge=0)
    teacher_id: Optional[int] = None

    @model_validator(mode='after')
    def check_time_window(self):
        _check_time_window(self.start_time, self.end_time)
        return self


class ClassInstanceCreate(ClassInstanceBase):
    """
    Turno suelto (``libre``, requiere ``date``) o serie recurrente (``fijo``,
    requiere ``weekdays``, ``start_date`` y ``end_date``).
    """
    enrollment_kind: EnrollmentKind = EnrollmentKind.LIBRE
    date: Optional[dt.date] = None
    weekdays: List[str] = Field(default_factory=list)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class ClassInstanceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    class_type_id: Optional[int] = None
    start_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    capacity: Optional[int] = Field(None, ge=0)
    date: Optional[dt.date] = None
    teacher_id: Optional[int] = None

    @model_validator(mode='after')
    def check_time_window(self):
        _check_time_window(self.start_time, self.end_time)
        return self


class EnrollmentDetail(BaseModel):
    user_id: int
    credit_type_id: int


class ClassInstance(BaseModel):
    id: int
    name: str
    class_type_id: Optional[int] = None
    start_time: str
    end_time: str
    capacity: int
    date: dt.datetime
    weekdays: List[str] = []
    enrollment_kind: EnrollmentKind
    recurrence_rule: Optional[str] = None
    status: ClassInstanceStatus
    teacher_id: Optional[int] = None
    enrolled_user_ids: List[int] = []
    waitlist_user_ids: List[int] = []
    enrollment_details: List[EnrollmentDetail] = []

    model_config = {"from_attributes": True}


class ClassBatchCreated(BaseModel):
    message: str
    created: int
    data: List[ClassInstance]


# Cancelación y reactivación
class CancelClassRequest(BaseModel):
    refund_credits: bool = True


class ClassDateAction(BaseModel):
    date: dt.date
    refund_credits: bool = True


class ClassCancellationResult(BaseModel):
    message: str
    class_instance: ClassInstance
    refunded_credits: int = 0
    notified_users: int = 0


class ClassDeletionResult(BaseModel):
    message: str
    deleted_id: int
    refunded_credits: int = 0
    notified_users: int = 0


class DateActionResult(BaseModel):
    message: str
    affected_classes: int
    refunded_credits: int = 0
    notified_users: int = 0


# Operaciones en lote sobre una familia de turnos
class ClassFamilyFilter(BaseModel):
    name: str
    class_type_id: int
    start_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN)
    from_date: Optional[dt.date] = Field(None, description="Por defecto, hoy")


class ClassFamilyChanges(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    start_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    capacity: Optional[int] = Field(None, ge=0)
    teacher_id: Optional[int] = None
    weekdays: Optional[List[str]] = None

    @model_validator(mode='after')
    def check_time_window(self):
        _check_time_window(self.start_time, self.end_time)
        return self


class BulkUpdateRequest(BaseModel):
    filters: ClassFamilyFilter
    updates: ClassFamilyChanges


class BulkDeleteRequest(BaseModel):
    filters: ClassFamilyFilter


class BulkExtendRequest(BaseModel):
    filters: ClassFamilyFilter
    end_date: dt.date


class BulkOperationResult(BaseModel):
    message: str
    matched: int = 0
    updated: int = 0
    deleted: int = 0
    created: int = 0


class GroupedClass(BaseModel):
    recurrence_rule: str
    name: str
    start_time: str
    end_time: str
    class_type_id: Optional[int] = None
    class_type_name: Optional[str] = None
    teacher_ids: List[int] = []
    weekdays: List[str] = []
    instance_count: int


# Inscripción
class EnrollmentResult(BaseModel):
    message: str
    class_instance: ClassInstance
    credit_type_id: Optional[int] = None


class AdminEnrollRequest(BaseModel):
    charge_credit: bool = True


class WaitlistResult(BaseModel):
    message: str
    waitlist_user_ids: List[int]


class PlanEnrollmentRequest(BaseModel):
    user_id: int
    class_type_id: int
    weekdays: List[str] = Field(..., min_length=1)
    start_date: dt.date
    end_date: dt.date
    start_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)

    @field_validator("weekdays")
    def strip_weekdays(cls, v: List[str]) -> List[str]:
        return [day.strip() for day in v if day and day.strip()]

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("La fecha de fin no puede ser anterior a la fecha de inicio.")
        return self


class PlanEnrollmentResult(BaseModel):
    message: str
    enrolled: int
    plan_id: int


class AvailableSlot(BaseModel):
    start_time: str
    end_time: str

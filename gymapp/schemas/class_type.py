from typing import Optional, List
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class ClassTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    reset_monthly: bool = False

    @field_validator("name")
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El nombre del tipo de clase es obligatorio.")
        return v


class ClassTypeCreate(ClassTypeBase):
    pass


class ClassTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    reset_monthly: Optional[bool] = None


class ClassType(ClassTypeBase):
    id: int
    is_universal: bool = False
    total_credits: int = 0
    # Derivado: total_credits menos los créditos asignados, nunca negativo
    available_credits: int = 0
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ClassTypeList(BaseModel):
    items: List[ClassType]
    total: int
    page: int
    pages: int

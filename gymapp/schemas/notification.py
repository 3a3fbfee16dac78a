from typing import Optional
from datetime import datetime

from pydantic import BaseModel


class Notification(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    is_important: bool = False
    is_read: bool = False
    related_class_id: Optional[int] = None
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

# marketplace/schemas/activity_schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from marketplace.schemas.order_schemas import Pagination


class UserActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int]
    username: str
    message: str
    created_at: datetime


class ActivityListResponse(BaseModel):
    activities: List[UserActivityOut]
    pagination: Pagination

from datetime import date, datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel


class CustomerOut(BaseModel):
    id: UUID
    merchant_id: UUID
    customer_id: str

    name: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[date] = None

    points: int
    tier: str
    share_count: int

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivityOut(BaseModel):
    id: UUID
    customer_id: UUID
    merchant_id: UUID

    event: str
    points: int
    meta: Optional[Dict[str, Any]] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApplyRewardIn(BaseModel):
    rewardType: str

from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel


class CouponOut(BaseModel):
    id: UUID
    code: str

    reward_id: UUID
    customer_id: UUID
    merchant_id: UUID

    expires_at: datetime
    used: bool
    used_at: Optional[datetime] = None
    used_on_order_id: Optional[str] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CouponRedeem(BaseModel):
    orderId: Optional[str] = None

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


RewardType = Literal[
    "percentage",
    "fixed",
    "shipping",
    "cashback",
    "product",
    "discountOrderPercent",
    "discountOrderPrice",
    "discountShipping",
    "freeProduct",
]


class RewardCreate(BaseModel):
    name: str
    name_en: Optional[str] = None
    description: str = ""
    description_en: Optional[str] = None

    points_required: int = Field(default=100, gt=0)
    reward_type: RewardType = "percentage"
    reward_value: Decimal = Field(default=Decimal("10"), ge=0)

    min_order_value: Decimal = Decimal("0")
    max_usage_per_customer: int = 1
    max_total_usage: int = 1000

    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    category: str = "general"
    terms: Optional[list[str]] = None
    terms_en: Optional[list[str]] = None


class RewardUpdate(BaseModel):
    name: Optional[str] = None
    name_en: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None

    points_required: Optional[int] = Field(default=None, gt=0)
    reward_type: Optional[RewardType] = None
    reward_value: Optional[Decimal] = Field(default=None, ge=0)

    min_order_value: Optional[Decimal] = None
    max_usage_per_customer: Optional[int] = None
    max_total_usage: Optional[int] = None

    is_active: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    category: Optional[str] = None
    terms: Optional[list[str]] = None
    terms_en: Optional[list[str]] = None


class RewardOut(BaseModel):
    id: UUID
    merchant_id: UUID
    name: str
    name_en: Optional[str] = None
    description: str
    points_required: int
    reward_type: str
    reward_value: Decimal
    max_total_usage: int
    current_usage: int
    is_active: bool
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

import uuid
from sqlalchemy import Boolean, Column, ForeignKey, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    code = Column(String(50), nullable=False, unique=True)

    # immutable once issued
    reward_id = Column(UUID(as_uuid=True), ForeignKey("rewards.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)

    expires_at = Column(TIMESTAMP, nullable=False)

    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(TIMESTAMP, nullable=True)
    used_on_order_id = Column(String(100), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())

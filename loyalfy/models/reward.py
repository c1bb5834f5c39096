import uuid
from sqlalchemy import Boolean, Column, ForeignKey, Integer, JSON, Numeric, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)

    name = Column(String(200), nullable=False)
    name_en = Column(String(200))
    description = Column(String(1000), nullable=False, default="")
    description_en = Column(String(1000))

    points_required = Column(Integer, nullable=False, default=100)

    # percentage / fixed / shipping / cashback / product
    reward_type = Column(String(50), nullable=False, default="percentage")
    reward_value = Column(Numeric(12, 2), nullable=False, default=10)

    min_order_value = Column(Numeric(12, 2), nullable=False, default=0)
    max_usage_per_customer = Column(Integer, nullable=False, default=1)
    max_total_usage = Column(Integer, nullable=False, default=1000)
    current_usage = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True)
    enabled = Column(Boolean, default=True)

    valid_from = Column(TIMESTAMP, server_default=func.now())
    valid_until = Column(TIMESTAMP, nullable=True)

    category = Column(String(50), default="general")
    terms = Column(JSON)
    terms_en = Column(JSON)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

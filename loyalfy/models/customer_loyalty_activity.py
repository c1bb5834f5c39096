import uuid
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class CustomerLoyaltyActivity(Base):
    __tablename__ = "customer_loyalty_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)

    event = Column(String(50), nullable=False)
    # signed: negative for deductions and redemptions
    points = Column(Integer, nullable=False)

    meta = Column("metadata", JSON)

    created_at = Column(TIMESTAMP, server_default=func.now())

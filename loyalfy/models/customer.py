import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class Customer(Base):
    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("merchant_id", "customer_id", name="uq_customers_merchant_customer_id"),
        CheckConstraint("points >= 0", name="ck_customers_points_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)
    # shopper identifier on the e-commerce platform
    customer_id = Column(String(100), nullable=False)

    name = Column(String(200))
    email = Column(String(255))
    phone = Column(String(50))
    date_of_birth = Column(Date)

    order_count = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)

    points = Column(Integer, nullable=False, default=0)
    tier = Column(String(20), nullable=False, default="bronze")  # bronze / silver / gold / platinum
    share_count = Column(Integer, nullable=False, default=0)

    meta = Column("metadata", JSON)

    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

import uuid
from sqlalchemy import Column, ForeignKey, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class ProcessedEvent(Base):
    __tablename__ = "processed_events"

    __table_args__ = (
        UniqueConstraint("merchant_id", "event", "order_id", name="uq_processed_events_merchant_event_order"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    event = Column(String(50), nullable=False)
    order_id = Column(String(100), nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())

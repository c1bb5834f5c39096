import uuid
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Text, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)

    event = Column(String(50), nullable=False)
    audience = Column(String(20), nullable=False, default="CUSTOMER")  # CUSTOMER / ADMIN

    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    html_body = Column(Text, nullable=False)
    meta = Column("metadata", JSON)

    status = Column(String(20), nullable=False, default="PENDING")
    # PENDING | SENT | FAILED

    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String(2000), nullable=True)

    locked_at = Column(TIMESTAMP, nullable=True)
    locked_by = Column(String(100), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    sent_at = Column(TIMESTAMP, nullable=True)

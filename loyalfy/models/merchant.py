import uuid
from sqlalchemy import Boolean, Column, Integer, JSON, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalfy.db import Base


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # store identifier on the e-commerce platform
    merchant_id = Column(String(100), nullable=False, unique=True)

    name = Column(String(200), nullable=False)
    username = Column(String(100))
    domain = Column(String(255))
    installer_email = Column(String(255))

    access_token = Column(String(2000))

    loyalty_settings = Column(JSON, nullable=False, default=dict)
    notification_settings = Column(JSON, nullable=False, default=dict)

    # derived from the activity ledger by the reconciliation job
    customers_points = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    @property
    def store_link(self) -> str:
        if self.domain:
            return self.domain
        return f"https://{self.username or self.merchant_id}.salla.sa"

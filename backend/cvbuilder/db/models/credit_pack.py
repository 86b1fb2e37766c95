"""CreditPack model: purchasable bundles of credits."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Uuid

from cvbuilder.db.base import Base


class CreditPack(Base):
    __tablename__ = "credit_packs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(50), unique=True, nullable=True, index=True)
    name = Column(String(100), nullable=False)

    credits = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # major units, e.g. 9.99
    currency = Column(String(3), nullable=False, default="USD")

    active = Column(Boolean, nullable=False, default=True)
    popular = Column(Boolean, nullable=False, default=False)
    features = Column(JSON, nullable=False, default=list)
    stripe_price_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

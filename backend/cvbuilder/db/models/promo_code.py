"""PromoCode and PromoRedemption models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid

from cvbuilder.db.base import Base


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case

    credits = Column(Numeric(10, 2), nullable=False, default=0)
    max_uses = Column(Integer, nullable=True)  # None = unlimited
    used_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class PromoRedemption(Base):
    __tablename__ = "promo_redemptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    promo_code_id = Column(Uuid, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (UniqueConstraint("promo_code_id", "user_id", name="uq_promo_redemption_user"),)

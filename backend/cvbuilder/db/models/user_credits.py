"""UserCredits model: one balance row per user."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from cvbuilder.db.base import Base


class UserCredits(Base):
    __tablename__ = "user_credits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)

    balance = Column(Numeric(10, 2), nullable=False, default=0)
    total_purchased = Column(Numeric(10, 2), nullable=False, default=0)
    total_used = Column(Numeric(10, 2), nullable=False, default=0)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User", back_populates="credits")

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_user_credits_balance_non_negative"),)

"""CreditUsage model: append-only audit log of every balance change."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String, Uuid

from cvbuilder.db.base import Base


class CreditUsage(Base):
    __tablename__ = "credit_usages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Signed like the balance change: spends negative, grants and refunds positive
    credits = Column(Numeric(10, 2), nullable=False)
    action = Column(String(50), nullable=False)  # CreditAction value
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    description = Column(String(500), nullable=True)
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

"""AIProvider model: admin-configured LLM backends."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Uuid

from cvbuilder.db.base import Base


class AIProvider(Base):
    __tablename__ = "ai_providers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)  # AIProviderType value
    api_key = Column(String(500), nullable=False)
    model = Column(String(100), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    is_primary = Column(Boolean, nullable=False, default=False)

    max_tokens = Column(Integer, nullable=False, default=4096)
    cost_per_token = Column(Numeric(12, 8), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

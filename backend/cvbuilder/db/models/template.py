"""Template model: CV and cover letter layouts."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text, Uuid

from cvbuilder.db.base import Base


class Template(Base):
    __tablename__ = "templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(100), unique=True, nullable=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, index=True)  # DocumentType value
    description = Column(Text, nullable=False, default="")
    thumbnail = Column(String(500), nullable=True)

    is_premium = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)

    # [{"id", "type", "title", "required", "order"}]
    default_sections = Column(JSON, nullable=False, default=list)
    # {"layout": "single-column", "colorScheme": [...], "fonts": [...]}
    styles = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

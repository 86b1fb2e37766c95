"""Document and DocumentVersion models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from cvbuilder.db.base import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(20), nullable=False)  # DocumentType value
    name = Column(String(200), nullable=False)
    template_id = Column(Uuid, ForeignKey("templates.id", ondelete="SET NULL"), nullable=True)

    # {"sections": ..., "customizations": {...}, "keywords": [...], "suggestions": [...]}
    content = Column(JSON, nullable=False, default=dict)

    job_description = Column(Text, nullable=True)
    job_url = Column(String(1000), nullable=True)
    job_title = Column(String(200), nullable=True)
    company_name = Column(String(200), nullable=True)
    ats_score = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    template = relationship("Template", lazy="joined")
    versions = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentVersion.version.desc()",
        passive_deletes=True,
    )


class DocumentVersion(Base):
    __tablename__ = "document_versions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    content = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    document = relationship("Document", back_populates="versions")

    __table_args__ = (UniqueConstraint("document_id", "version", name="uq_document_version"),)

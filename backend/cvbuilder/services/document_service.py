"""Document CRUD and version history, always scoped to the owning user."""

import copy
import uuid

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cvbuilder.core.exceptions import DocumentNotFoundError, TemplateNotFoundError
from cvbuilder.db.models.document import Document, DocumentVersion
from cvbuilder.db.models.template import Template
from cvbuilder.domain.documents import DEFAULT_CUSTOMIZATIONS, MAX_VERSIONS

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = ("name", "job_description", "job_url", "job_title", "company_name", "template_id")


async def list_documents(session: AsyncSession, user_id: uuid.UUID, doc_type: str | None = None) -> list[Document]:
    query = select(Document).where(Document.user_id == user_id)
    if doc_type:
        query = query.where(Document.type == doc_type)
    result = await session.execute(query.order_by(Document.updated_at.desc()))
    return list(result.scalars().unique().all())


async def get_document(session: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID) -> Document:
    """Return the user's document or raise ``DocumentNotFoundError``."""
    result = await session.execute(select(Document).where(Document.id == document_id, Document.user_id == user_id))
    document = result.unique().scalar_one_or_none()
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


async def list_versions(
    session: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID, limit: int = MAX_VERSIONS
) -> list[DocumentVersion]:
    await get_document(session, user_id, document_id)
    result = await session.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id)
        .order_by(DocumentVersion.version.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_template(session: AsyncSession, template_id: uuid.UUID) -> Template:
    template = await session.get(Template, template_id)
    if template is None or not template.active:
        raise TemplateNotFoundError(f"Template {template_id} not found")
    return template


async def create_document(
    session: AsyncSession,
    user_id: uuid.UUID,
    doc_type: str,
    name: str,
    template_id: uuid.UUID,
    content: dict | None = None,
    **job_fields,
) -> Document:
    """Create a document seeded from the template's default sections."""
    template = await get_template(session, template_id)
    if content is None:
        content = {
            "sections": {s["id"]: None for s in template.default_sections or [] if "id" in s},
            "customizations": dict(DEFAULT_CUSTOMIZATIONS),
        }
    document = Document(
        user_id=user_id,
        type=doc_type,
        name=name,
        template_id=template.id,
        content=content,
        **{k: v for k, v in job_fields.items() if k in UPDATABLE_FIELDS},
    )
    session.add(document)
    await session.flush()
    return document


async def _snapshot(session: AsyncSession, document: Document) -> DocumentVersion:
    """Store the document's current content as the next version, pruning beyond the cap."""
    result = await session.execute(
        select(func.max(DocumentVersion.version)).where(DocumentVersion.document_id == document.id)
    )
    next_version = (result.scalar_one_or_none() or 0) + 1
    version = DocumentVersion(document_id=document.id, version=next_version, content=copy.deepcopy(document.content))
    session.add(version)
    await session.flush()

    keep = (
        select(DocumentVersion.id)
        .where(DocumentVersion.document_id == document.id)
        .order_by(DocumentVersion.version.desc())
        .limit(MAX_VERSIONS)
    )
    await session.execute(
        delete(DocumentVersion)
        .where(DocumentVersion.document_id == document.id, DocumentVersion.id.not_in(keep))
        .execution_options(synchronize_session=False)
    )
    return version


async def update_document(session: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID, data: dict) -> Document:
    """Apply ``data``; a content change first snapshots the previous content."""
    document = await get_document(session, user_id, document_id)

    if "content" in data and data["content"] is not None and data["content"] != document.content:
        await _snapshot(session, document)
        document.content = data["content"]

    for key in UPDATABLE_FIELDS:
        if key in data and data[key] is not None:
            if key == "template_id":
                await get_template(session, data[key])
            setattr(document, key, data[key])

    await session.flush()
    return document


async def restore_version(
    session: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID, version_id: uuid.UUID
) -> Document:
    """Make an older version current again; the current content is snapshotted first."""
    document = await get_document(session, user_id, document_id)
    result = await session.execute(
        select(DocumentVersion).where(DocumentVersion.id == version_id, DocumentVersion.document_id == document.id)
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise DocumentNotFoundError(f"Version {version_id} not found")

    restored = copy.deepcopy(version.content)
    await _snapshot(session, document)
    document.content = restored
    await session.flush()
    logger.info("document_version_restored", document_id=str(document.id), version=version.version)
    return document


async def delete_document(session: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID) -> None:
    document = await get_document(session, user_id, document_id)
    await session.delete(document)
    await session.flush()

"""Document routes: CRUD, version history, metered AI generation and PDF export."""

import uuid
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from cvbuilder.api.errors import domain_errors
from cvbuilder.api.schemas.documents import (
    ATSResponse,
    DocumentCreate,
    DocumentDetailResponse,
    DocumentResponse,
    DocumentUpdate,
    DocumentVersionResponse,
    GenerateCoverLetterRequest,
    GenerateCVRequest,
    GenerationResponse,
)
from cvbuilder.core.auth import AuthUser, require_auth
from cvbuilder.core.config import get_settings
from cvbuilder.core.rate_limit import rate_limit_ai
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.user import User
from cvbuilder.services import credit_service, document_service
from cvbuilder.services.ai_service import AIService
from cvbuilder.services.email_service import get_email_service
from cvbuilder.services.generation_service import GenerationOutcome, GenerationService
from cvbuilder.services.pdf_service import get_pdf_exporter, needs_watermark, pdf_filename
from cvbuilder.services.profile_service import get_profile
from cvbuilder.services.system_config_service import get_config_bool

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_generation_service() -> GenerationService:
    """Dependency; tests override it with a fake AI service."""
    return GenerationService(ai=AIService(), email=get_email_service())


def _generation_response(outcome: GenerationOutcome) -> GenerationResponse:
    return GenerationResponse(
        document=DocumentResponse.model_validate(outcome.document),
        ats_score=outcome.ats_score,
        keywords=outcome.keywords,
        suggestions=outcome.suggestions,
        credits_used=outcome.credits_used,
        credits_remaining=outcome.credits_remaining,
    )


# ---------- CRUD ----------


@router.get("", response_model=list[DocumentResponse])
async def list_documents(
    type: Literal["CV", "COVER_LETTER"] | None = Query(None),
    user: AuthUser = Depends(require_auth),
):
    factory = get_session_factory()
    async with factory() as session:
        documents = await document_service.list_documents(session, user.user_id, type)
        return [DocumentResponse.model_validate(d) for d in documents]


@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(body: DocumentCreate, user: AuthUser = Depends(require_auth)):
    """Create a blank document from a template without calling the AI."""
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            document = await document_service.create_document(
                session,
                user.user_id,
                body.type,
                body.name,
                body.template_id,
                content=body.content,
                job_description=body.job_description,
                job_title=body.job_title,
                company_name=body.company_name,
                job_url=body.job_url,
            )
        await session.commit()
        await session.refresh(document, ["template"])
        return DocumentResponse.model_validate(document)


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(document_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    """Document with its latest versions."""
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            document = await document_service.get_document(session, user.user_id, document_id)
            versions = await document_service.list_versions(session, user.user_id, document_id)
        return DocumentDetailResponse(
            **DocumentResponse.model_validate(document).model_dump(),
            versions=[DocumentVersionResponse.model_validate(v) for v in versions],
        )


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(document_id: uuid.UUID, body: DocumentUpdate, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            document = await document_service.update_document(
                session, user.user_id, document_id, body.model_dump(exclude_unset=True)
            )
        await session.commit()
        await session.refresh(document, ["template"])
        return DocumentResponse.model_validate(document)


@router.delete("/{document_id}", status_code=204)
async def delete_document(document_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            await document_service.delete_document(session, user.user_id, document_id)
        await session.commit()
    logger.info("document_deleted", user_id=str(user.user_id), document_id=str(document_id))


# ---------- Versions ----------


@router.get("/{document_id}/versions", response_model=list[DocumentVersionResponse])
async def list_versions(document_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            versions = await document_service.list_versions(session, user.user_id, document_id)
        return [DocumentVersionResponse.model_validate(v) for v in versions]


@router.post("/{document_id}/versions/{version_id}/restore", response_model=DocumentResponse)
async def restore_version(document_id: uuid.UUID, version_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            document = await document_service.restore_version(session, user.user_id, document_id, version_id)
        await session.commit()
        await session.refresh(document, ["template"])
        return DocumentResponse.model_validate(document)


# ---------- AI generation ----------


@router.post("/cv", response_model=GenerationResponse, status_code=201)
async def generate_cv(
    body: GenerateCVRequest,
    user: AuthUser = Depends(rate_limit_ai),
    service: GenerationService = Depends(get_generation_service),
):
    """Generate a CV tailored to a job description. Spends credits."""
    with domain_errors():
        outcome = await service.generate_cv(user.user_id, **body.model_dump())
    return _generation_response(outcome)


@router.post("/cover-letter", response_model=GenerationResponse, status_code=201)
async def generate_cover_letter(
    body: GenerateCoverLetterRequest,
    user: AuthUser = Depends(rate_limit_ai),
    service: GenerationService = Depends(get_generation_service),
):
    """Generate a cover letter tailored to a job description. Spends credits."""
    with domain_errors():
        outcome = await service.generate_cover_letter(user.user_id, **body.model_dump())
    return _generation_response(outcome)


@router.post("/{document_id}/optimize-ats", response_model=ATSResponse)
async def optimize_ats(
    document_id: uuid.UUID,
    user: AuthUser = Depends(rate_limit_ai),
    service: GenerationService = Depends(get_generation_service),
):
    """Score a document against its job description. Spends credits."""
    with domain_errors():
        outcome = await service.optimize_ats(user.user_id, document_id)
    return ATSResponse(
        document_id=outcome.document_id,
        ats_score=outcome.score,
        feedback=outcome.feedback,
        credits_used=outcome.credits_used,
        credits_remaining=outcome.credits_remaining,
    )


# ---------- PDF ----------


@router.get("/{document_id}/download")
async def download_document(document_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    """Render the document to PDF. Free-tier accounts get a watermark."""
    if not get_settings().pdf_enabled:
        raise HTTPException(status_code=503, detail="PDF export is disabled")

    credits = await credit_service.get_or_create_credits(user.user_id)

    factory = get_session_factory()
    async with factory() as session:
        with domain_errors():
            document = await document_service.get_document(session, user.user_id, document_id)
        db_user = await session.get(User, user.user_id)
        profile = await get_profile(session, user.user_id)
        watermark = needs_watermark(await get_config_bool(session, "watermark_free"), credits.total_purchased)

    person = {
        "name": db_user.name,
        "email": db_user.email,
        "headline": profile.headline if profile else None,
        "phone": profile.phone if profile else None,
        "location": profile.location if profile else None,
        "website": profile.website if profile else None,
        "linkedin_url": profile.linkedin_url if profile else None,
        "github_url": profile.github_url if profile else None,
    }

    exporter = get_pdf_exporter()
    html = exporter.render_html(
        document.type,
        document.name,
        document.content or {},
        document.template.styles if document.template else None,
        person,
        company_name=document.company_name,
        watermark=watermark,
    )
    with domain_errors():
        pdf_bytes = await exporter.render_pdf(html)

    logger.info("document_downloaded", user_id=str(user.user_id), document_id=str(document_id), watermark=watermark)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{pdf_filename(document.name)}"'},
    )

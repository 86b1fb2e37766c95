"""Job intake routes: scrape a posting URL, parse pasted text, list templates."""

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from cvbuilder.api.errors import domain_errors
from cvbuilder.api.schemas.jobs import JobAnalysisResponse, ParseRequest, ScrapeRequest, TemplateResponse
from cvbuilder.core.auth import AuthUser, require_auth
from cvbuilder.core.exceptions import AIProviderError, AIProviderNotConfiguredError
from cvbuilder.core.rate_limit import rate_limit_ai
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.template import Template
from cvbuilder.services.ai_service import AIService
from cvbuilder.services.scraper_service import (
    DEFAULT_TITLE,
    ScrapedJob,
    parse_job_description,
    scrape_job_url,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_ai_service() -> AIService:
    return AIService()


async def _with_analysis(job: ScrapedJob, ai: AIService) -> JobAnalysisResponse:
    """Merge the AI analysis into heuristically extracted fields.

    Analysis is free and best-effort: without a working provider the
    heuristic result is returned as-is.
    """
    try:
        analysis = await ai.analyze_job_description(job.description)
    except (AIProviderNotConfiguredError, AIProviderError) as e:
        logger.warning("job_analysis_skipped", error=str(e), error_type=type(e).__name__)
        analysis = {}

    title = job.title
    if title == DEFAULT_TITLE and analysis.get("title"):
        title = analysis["title"]

    return JobAnalysisResponse(
        title=title,
        company=job.company or analysis.get("company", ""),
        location=job.location,
        description=job.description,
        requirements=analysis.get("requirements") or job.requirements,
        responsibilities=analysis.get("responsibilities") or [],
        keywords=analysis.get("keywords") or [],
        salary=job.salary,
        url=job.url,
    )


@router.post("/scrape", response_model=JobAnalysisResponse)
async def scrape(
    body: ScrapeRequest,
    user: AuthUser = Depends(rate_limit_ai),
    ai: AIService = Depends(get_ai_service),
):
    with domain_errors():
        job = await scrape_job_url(body.url)
    logger.info("job_url_scraped", user_id=str(user.user_id))
    return await _with_analysis(job, ai)


@router.post("/parse", response_model=JobAnalysisResponse)
async def parse(
    body: ParseRequest,
    user: AuthUser = Depends(rate_limit_ai),
    ai: AIService = Depends(get_ai_service),
):
    job = parse_job_description(body.content)
    return await _with_analysis(job, ai)


@router.get("/templates", response_model=list[TemplateResponse])
async def list_templates(
    type: Literal["CV", "COVER_LETTER"] | None = Query(None),
    _: AuthUser = Depends(require_auth),
):
    """Active templates, free ones first."""
    factory = get_session_factory()
    async with factory() as session:
        query = select(Template).where(Template.active.is_(True))
        if type:
            query = query.where(Template.type == type)
        result = await session.execute(query.order_by(Template.is_premium.asc(), Template.name.asc()))
        return [TemplateResponse.model_validate(t) for t in result.scalars().all()]

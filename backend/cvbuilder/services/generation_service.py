"""GenerationService: metered AI generation.

Every AI-backed action follows the same sequence:

    cost -> validate -> reserve credits -> call AI -> persist + settle -> warn if low

Credits are taken before the expensive call and handed back on any failure
after that point, so a request can neither spend credits it doesn't have nor
lose credits to an upstream error. That includes cancellation: a client that
disconnects mid-call still gets its credits back.
"""

import asyncio
import uuid
from dataclasses import dataclass
from decimal import Decimal

import structlog

from cvbuilder.core.exceptions import MissingJobDescriptionError, ProfileIncompleteError
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.document import Document
from cvbuilder.db.models.user import User
from cvbuilder.domain.credits import CreditAction
from cvbuilder.domain.documents import DEFAULT_CUSTOMIZATIONS, DocumentType
from cvbuilder.services import credit_service
from cvbuilder.services.ai_service import AIService, GenerationParams
from cvbuilder.services.document_service import get_document, get_template
from cvbuilder.services.email_service import EmailService
from cvbuilder.services.profile_service import get_profile, profile_snapshot

logger = structlog.get_logger(__name__)


@dataclass
class GenerationOutcome:
    document: Document
    ats_score: int
    keywords: list[str]
    suggestions: list[str]
    credits_used: Decimal
    credits_remaining: Decimal


@dataclass
class ATSOutcome:
    document_id: uuid.UUID
    score: int
    feedback: list[str]
    credits_used: Decimal
    credits_remaining: Decimal


def document_name(doc_type: DocumentType, job_title: str | None, company_name: str | None) -> str:
    if doc_type == DocumentType.CV:
        return f"CV - {job_title or company_name or 'Custom'}"
    return f"Cover Letter - {company_name or job_title or 'Custom'}"


class GenerationService:
    """Orchestrates credit metering around AI calls.

    Args:
        ai: AIService (a fake in tests)
        email: EmailService used for the low-balance warning
    """

    def __init__(self, ai: AIService, email: EmailService) -> None:
        self.ai = ai
        self.email = email

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_cv(self, user_id: uuid.UUID, **request) -> GenerationOutcome:
        return await self._generate(user_id, DocumentType.CV, CreditAction.CV_GENERATION, **request)

    async def generate_cover_letter(self, user_id: uuid.UUID, **request) -> GenerationOutcome:
        return await self._generate(
            user_id, DocumentType.COVER_LETTER, CreditAction.COVER_LETTER_GENERATION, **request
        )

    async def optimize_ats(self, user_id: uuid.UUID, document_id: uuid.UUID) -> ATSOutcome:
        """Score an existing document against its stored job description."""
        action = CreditAction.ATS_OPTIMIZATION
        cost = await credit_service.get_cost(action)

        factory = get_session_factory()
        async with factory() as session:
            document = await get_document(session, user_id, document_id)
            if not document.job_description:
                raise MissingJobDescriptionError("No job description found for this document")
            content = document.content
            job_description = document.job_description

        reservation = await credit_service.reserve(user_id, cost, action)

        try:
            ats = await self.ai.calculate_ats_score(content, job_description)
        except BaseException as e:
            await self._fail(reservation, "ai_generation_failed", e, document_id=str(document_id))
            raise

        try:
            async with factory() as session:
                document = await get_document(session, user_id, document_id)
                document.ats_score = ats["score"]
                await credit_service.settle(session, reservation, document.id, description="ATS score analysis")
                await session.commit()
        except BaseException as e:
            await self._fail(reservation, "generation_persist_failed", e, document_id=str(document_id))
            raise

        remaining = await self._after_commit(user_id)
        logger.info("ats_score_calculated", user_id=str(user_id), document_id=str(document_id), score=ats["score"])
        return ATSOutcome(
            document_id=document_id,
            score=ats["score"],
            feedback=ats["feedback"],
            credits_used=cost,
            credits_remaining=remaining,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate(
        self,
        user_id: uuid.UUID,
        doc_type: DocumentType,
        action: CreditAction,
        *,
        template_id: uuid.UUID,
        job_description: str,
        job_title: str | None = None,
        company_name: str | None = None,
        job_url: str | None = None,
        tone: str = "professional",
        customizations: dict | None = None,
    ) -> GenerationOutcome:
        # 1. Cost
        cost = await credit_service.get_cost(action)

        # 2. Validate before spending anything
        factory = get_session_factory()
        async with factory() as session:
            profile = await get_profile(session, user_id)
            if profile is None:
                raise ProfileIncompleteError("Please complete your profile first")
            user = await session.get(User, user_id)
            template = await get_template(session, template_id)
            snapshot = profile_snapshot(profile, user.name if user else None, doc_type)
            template_sections = list(template.default_sections or [])

        # 3. Reserve
        reservation = await credit_service.reserve(user_id, cost, action)

        # 4. AI call
        params = GenerationParams(
            profile=snapshot,
            job_description=job_description,
            doc_type=doc_type,
            job_title=job_title,
            company_name=company_name,
            tone=tone,
            template_sections=template_sections,
        )
        try:
            result = await self.ai.generate_content(params)
        except BaseException as e:
            await self._fail(reservation, "ai_generation_failed", e, doc_type=doc_type.value)
            raise

        # 5. Persist document and usage row together
        content = {
            "sections": result.content,
            "customizations": {**DEFAULT_CUSTOMIZATIONS, **(customizations or {})},
            "keywords": result.keywords,
            "suggestions": result.suggestions,
        }
        try:
            async with factory() as session:
                document = Document(
                    user_id=user_id,
                    type=doc_type.value,
                    name=document_name(doc_type, job_title, company_name),
                    template_id=template_id,
                    content=content,
                    job_description=job_description,
                    job_url=job_url,
                    job_title=job_title,
                    company_name=company_name,
                    ats_score=result.ats_score,
                )
                session.add(document)
                await session.flush()
                await credit_service.settle(
                    session,
                    reservation,
                    document.id,
                    description=document.name,
                    metadata={
                        "provider": result.provider,
                        "model": result.model,
                        "input_tokens": result.input_tokens,
                        "output_tokens": result.output_tokens,
                    },
                )
                await session.commit()
                await session.refresh(document, ["template"])
        except BaseException as e:
            await self._fail(reservation, "generation_persist_failed", e, doc_type=doc_type.value)
            raise

        # 6. Low-balance warning
        remaining = await self._after_commit(user_id)

        logger.info(
            "document_generated",
            user_id=str(user_id),
            document_id=str(document.id),
            doc_type=doc_type.value,
            credits_used=str(cost),
            credits_remaining=str(remaining),
        )

        # 7. Result
        return GenerationOutcome(
            document=document,
            ats_score=result.ats_score,
            keywords=result.keywords,
            suggestions=result.suggestions,
            credits_used=cost,
            credits_remaining=remaining,
        )

    async def _fail(
        self, reservation: credit_service.CreditReservation, event: str, exc: BaseException, **context
    ) -> None:
        if isinstance(exc, asyncio.CancelledError):
            event = "generation_cancelled"
        logger.error(
            event,
            user_id=str(reservation.user_id),
            action=reservation.action.value,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        # Shielded so a second cancel can't abandon the refund halfway
        await asyncio.shield(credit_service.refund(reservation, reason=f"{event}: {type(exc).__name__}"))

    async def _after_commit(self, user_id: uuid.UUID) -> Decimal:
        """Read the new balance and send the low-credit warning when due."""
        remaining = await credit_service.get_balance(user_id)
        if await credit_service.is_low(remaining):
            factory = get_session_factory()
            async with factory() as session:
                user = await session.get(User, user_id)
            if user is not None:
                await self.email.send_low_credits(user.email, user.name, str(remaining))
        return remaining

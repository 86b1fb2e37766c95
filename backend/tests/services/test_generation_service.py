"""Tests for GenerationService: metered generation with reserve/settle/refund."""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from cvbuilder.core.exceptions import (
    AIProviderError,
    DocumentNotFoundError,
    InsufficientCreditsError,
    MissingJobDescriptionError,
    ProfileIncompleteError,
    TemplateNotFoundError,
)
from cvbuilder.db.models.credit_usage import CreditUsage
from cvbuilder.db.models.document import Document
from cvbuilder.domain.documents import DocumentType
from cvbuilder.services import credit_service
from cvbuilder.services.generation_service import GenerationService, document_name

pytestmark = pytest.mark.integration

JOB_DESCRIPTION = "We are hiring a senior backend engineer to own our Python billing platform."


def _email_mock() -> MagicMock:
    email = MagicMock()
    email.send_low_credits = AsyncMock(return_value=True)
    return email


async def _usage(factory, user_id) -> list[CreditUsage]:
    async with factory() as session:
        result = await session.execute(
            select(CreditUsage).where(CreditUsage.user_id == user_id).order_by(CreditUsage.created_at)
        )
        return list(result.scalars().all())


async def _documents(factory, user_id) -> list[Document]:
    async with factory() as session:
        result = await session.execute(select(Document).where(Document.user_id == user_id))
        return list(result.scalars().unique().all())


class _HangingAI:
    """AI stand-in that never answers, like a provider that stalls until the client gives up."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def generate_content(self, params):
        self.started.set()
        await asyncio.sleep(3600)


class TestDocumentName:
    def test_cv_prefers_job_title(self):
        assert document_name(DocumentType.CV, "Backend Engineer", "Acme") == "CV - Backend Engineer"

    def test_cover_letter_prefers_company(self):
        assert document_name(DocumentType.COVER_LETTER, "Backend Engineer", "Acme") == "Cover Letter - Acme"

    def test_custom_fallback(self):
        assert document_name(DocumentType.CV, None, None) == "CV - Custom"


class TestGenerateCV:
    async def test_success_persists_document_and_charges(self, db, make_user, template_id, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        outcome = await service.generate_cv(
            user.id,
            template_id=await template_id("CV"),
            job_description=JOB_DESCRIPTION,
            job_title="Backend Engineer",
            company_name="Acme",
            tone="technical",
        )

        assert outcome.credits_used == Decimal("1.00")
        assert outcome.credits_remaining == Decimal("2.00")
        assert outcome.ats_score == 82
        assert outcome.document.name == "CV - Backend Engineer"
        assert outcome.document.content["sections"]["skills"] == ["Python", "PostgreSQL", "FastAPI"]
        assert outcome.document.content["customizations"]["primaryColor"] == "#2563eb"

        usage = await _usage(db, user.id)
        assert len(usage) == 1
        assert usage[0].action == "CV_GENERATION"
        assert usage[0].credits == Decimal("-1.00")
        assert usage[0].description == "CV - Backend Engineer"
        assert usage[0].document_id == outcome.document.id
        assert usage[0].details["provider"] == "ANTHROPIC"

    async def test_prompt_gets_profile_and_template_sections(self, db, make_user, template_id, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        params = fake_ai.calls[0]
        assert params.doc_type == DocumentType.CV
        assert params.profile["name"] == "Ada Lovelace"
        assert params.profile["experiences"][0]["company"] == "Acme"
        assert "projects" in params.profile
        assert params.template_sections

    async def test_customizations_override_defaults(self, db, make_user, template_id, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        outcome = await service.generate_cv(
            user.id,
            template_id=await template_id("CV"),
            job_description=JOB_DESCRIPTION,
            customizations={"primaryColor": "#000000"},
        )

        assert outcome.document.content["customizations"]["primaryColor"] == "#000000"
        assert outcome.document.content["customizations"]["fontFamily"] == "Inter"

    async def test_insufficient_credits_skips_ai(self, db, make_user, template_id, fake_ai):
        user = await make_user(balance=Decimal("0.50"))
        service = GenerationService(ai=fake_ai, email=_email_mock())

        with pytest.raises(InsufficientCreditsError):
            await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        assert fake_ai.calls == []
        assert await credit_service.get_balance(user.id) == Decimal("0.50")
        assert await _documents(db, user.id) == []

    async def test_ai_failure_refunds(self, db, make_user, template_id, failing_ai):
        user = await make_user()
        service = GenerationService(ai=failing_ai, email=_email_mock())

        with pytest.raises(AIProviderError):
            await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        credits = await credit_service.get_or_create_credits(user.id)
        assert credits.balance == Decimal("3.00")
        assert credits.total_used == Decimal("0.00")
        usage = await _usage(db, user.id)
        assert sorted(u.action for u in usage) == ["CV_GENERATION", "REFUND"]
        assert sum(u.credits for u in usage) == Decimal("0.00")
        assert await _documents(db, user.id) == []

    async def test_persist_failure_refunds(self, db, make_user, template_id, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())
        broken = AsyncMock(side_effect=OperationalError("UPDATE credit_usages", {}, Exception("disk I/O error")))

        with patch.object(credit_service, "settle", broken):
            with pytest.raises(OperationalError):
                await service.generate_cv(
                    user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION
                )

        assert len(fake_ai.calls) == 1
        credits = await credit_service.get_or_create_credits(user.id)
        assert credits.balance == Decimal("3.00")
        assert credits.total_used == Decimal("0.00")
        usage = await _usage(db, user.id)
        assert sorted(u.action for u in usage) == ["CV_GENERATION", "REFUND"]
        assert all(u.document_id is None for u in usage)
        assert await _documents(db, user.id) == []

    async def test_cancelled_request_refunds(self, db, make_user, template_id):
        user = await make_user()
        ai = _HangingAI()
        service = GenerationService(ai=ai, email=_email_mock())

        task = asyncio.create_task(
            service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)
        )
        await asyncio.wait_for(ai.started.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        credits = await credit_service.get_or_create_credits(user.id)
        assert credits.balance == Decimal("3.00")
        usage = await _usage(db, user.id)
        assert sorted(u.action for u in usage) == ["CV_GENERATION", "REFUND"]
        assert "generation_cancelled" in next(u.description for u in usage if u.action == "REFUND")
        assert await _documents(db, user.id) == []

    async def test_missing_profile_rejected_before_reserve(self, db, make_user, template_id, fake_ai):
        user = await make_user(with_profile=False)
        service = GenerationService(ai=fake_ai, email=_email_mock())

        with pytest.raises(ProfileIncompleteError):
            await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        assert await credit_service.get_balance(user.id) == Decimal("3.00")
        assert fake_ai.calls == []

    async def test_unknown_template_rejected_before_reserve(self, db, make_user, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        with pytest.raises(TemplateNotFoundError):
            await service.generate_cv(user.id, template_id=uuid.uuid4(), job_description=JOB_DESCRIPTION)

        assert await credit_service.get_balance(user.id) == Decimal("3.00")

    async def test_low_balance_sends_warning(self, db, make_user, template_id, fake_ai):
        user = await make_user(balance=Decimal("3"))
        email = _email_mock()
        service = GenerationService(ai=fake_ai, email=email)

        await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        # 3 - 1 = 2, which is at the default threshold
        email.send_low_credits.assert_awaited_once_with(user.email, user.name, "2.00")

    async def test_healthy_balance_sends_no_warning(self, db, make_user, template_id, fake_ai):
        user = await make_user(balance=Decimal("10"))
        email = _email_mock()
        service = GenerationService(ai=fake_ai, email=email)

        await service.generate_cv(user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION)

        email.send_low_credits.assert_not_awaited()


class TestGenerateCoverLetter:
    async def test_cover_letter_sees_trimmed_profile(self, db, make_user, template_id, fake_ai):
        user = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        outcome = await service.generate_cover_letter(
            user.id,
            template_id=await template_id("COVER_LETTER"),
            job_description=JOB_DESCRIPTION,
            company_name="Acme",
            tone="friendly",
        )

        params = fake_ai.calls[0]
        assert params.doc_type == DocumentType.COVER_LETTER
        assert "projects" not in params.profile
        assert outcome.document.type == "COVER_LETTER"
        assert outcome.document.name == "Cover Letter - Acme"

        usage = await _usage(db, user.id)
        assert [u.action for u in usage] == ["COVER_LETTER_GENERATION"]


class TestOptimizeATS:
    async def _document(self, service, user, template_id) -> Document:
        outcome = await service.generate_cv(
            user.id, template_id=await template_id("CV"), job_description=JOB_DESCRIPTION
        )
        return outcome.document

    async def test_scores_and_charges_half_credit(self, db, make_user, template_id, fake_ai):
        user = await make_user(balance=Decimal("10"))
        service = GenerationService(ai=fake_ai, email=_email_mock())
        document = await self._document(service, user, template_id)
        fake_ai.ats_score = 91

        outcome = await service.optimize_ats(user.id, document.id)

        assert outcome.score == 91
        assert outcome.credits_used == Decimal("0.50")
        assert outcome.credits_remaining == Decimal("8.50")
        assert fake_ai.ats_calls[0][1] == JOB_DESCRIPTION

        async with db() as session:
            refreshed = await session.get(Document, document.id)
            assert refreshed.ats_score == 91

    async def test_other_users_document_is_not_found(self, db, make_user, template_id, fake_ai):
        owner = await make_user()
        intruder = await make_user()
        service = GenerationService(ai=fake_ai, email=_email_mock())
        document = await self._document(service, owner, template_id)

        with pytest.raises(DocumentNotFoundError):
            await service.optimize_ats(intruder.id, document.id)

        assert await credit_service.get_balance(intruder.id) == Decimal("3.00")

    async def test_document_without_job_description_rejected(self, db, make_user, template_id, fake_ai):
        from cvbuilder.services.document_service import create_document

        user = await make_user()
        async with db() as session:
            document = await create_document(session, user.id, "CV", "Blank", await template_id("CV"))
            await session.commit()
        service = GenerationService(ai=fake_ai, email=_email_mock())

        with pytest.raises(MissingJobDescriptionError):
            await service.optimize_ats(user.id, document.id)

        assert await credit_service.get_balance(user.id) == Decimal("3.00")

    async def test_ai_failure_refunds(self, db, make_user, template_id, fake_ai):
        user = await make_user(balance=Decimal("10"))
        service = GenerationService(ai=fake_ai, email=_email_mock())
        document = await self._document(service, user, template_id)
        fake_ai.fail_with = AIProviderError("down")

        with pytest.raises(AIProviderError):
            await service.optimize_ats(user.id, document.id)

        assert await credit_service.get_balance(user.id) == Decimal("9.00")

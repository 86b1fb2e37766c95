"""Shared test fixtures for all test groups."""

import os
import uuid
from decimal import Decimal

# Settings are cached on first use; set test values before any cvbuilder import
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("GOOGLE_API_KEY", "")

import pytest
from fakeredis import FakeAsyncRedis

from cvbuilder.domain.documents import DocumentType
from cvbuilder.services.ai_service import GenerationParams, GenerationResult

CV_SECTIONS = {
    "summary": "Backend engineer with eight years of Python experience.",
    "experience": [{"company": "Acme", "title": "Senior Engineer", "highlights": ["Cut p95 latency by 40%"]}],
    "skills": ["Python", "PostgreSQL", "FastAPI"],
}


class FakeAIService:
    """Stands in for AIService; records calls and can be told to fail."""

    def __init__(self, fail_with: Exception | None = None, ats_score: int = 82):
        self.fail_with = fail_with
        self.ats_score = ats_score
        self.calls: list[GenerationParams] = []
        self.ats_calls: list[tuple[dict, str]] = []

    async def generate_content(self, params: GenerationParams) -> GenerationResult:
        self.calls.append(params)
        if self.fail_with is not None:
            raise self.fail_with
        sections = dict(CV_SECTIONS) if params.doc_type == DocumentType.CV else {"body": "Dear hiring manager..."}
        return GenerationResult(
            content=sections,
            ats_score=self.ats_score,
            keywords=["python", "fastapi"],
            suggestions=["Quantify the migration project"],
            provider="ANTHROPIC",
            model="claude-test",
            input_tokens=1200,
            output_tokens=800,
        )

    async def calculate_ats_score(self, content: dict, job_description: str) -> dict:
        self.ats_calls.append((content, job_description))
        if self.fail_with is not None:
            raise self.fail_with
        return {"score": self.ats_score, "feedback": ["Add Kubernetes to skills"]}

    async def analyze_job_description(self, job_description: str) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        return {
            "title": "Backend Engineer",
            "company": "Acme",
            "requirements": ["5+ years Python"],
            "responsibilities": ["Own the billing service"],
            "keywords": ["python", "postgres"],
        }


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database, fake Redis and seed data in the test's event loop.

    Yields the global session factory so services under test share it.
    """
    import cvbuilder.db.base as db_mod
    import cvbuilder.db.redis as redis_mod
    from cvbuilder.db import close_db, close_redis, get_session_factory, init_db, init_redis
    from cvbuilder.db.seed import seed_all

    db_mod._engine = None
    db_mod._session_factory = None
    redis_mod._redis = None

    await init_db(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_redis(client=FakeAsyncRedis(decode_responses=True))
    await seed_all()

    yield get_session_factory()

    await close_redis()
    await close_db()


async def create_user(
    email: str | None = None,
    name: str = "Ada Lovelace",
    role: str = "USER",
    balance: Decimal | None = None,
    password: str = "correct-horse-battery",
    with_profile: bool = True,
):
    """Insert a user (plus profile and credits) through the global session factory."""
    from cvbuilder.core.auth import hash_password
    from cvbuilder.db.base import get_session_factory
    from cvbuilder.db.models.profile import Experience, Profile, Skill
    from cvbuilder.db.models.user import User
    from cvbuilder.services.credit_service import ensure_credits_row

    factory = get_session_factory()
    async with factory() as session:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            name=name,
            role=role,
        )
        session.add(user)
        await session.flush()

        credits = await ensure_credits_row(session, user.id)
        if balance is not None:
            credits.balance = balance

        if with_profile:
            from datetime import date

            profile = Profile(user_id=user.id, headline="Backend Engineer", summary="Builds APIs.")
            session.add(profile)
            await session.flush()
            session.add(
                Experience(
                    profile_id=profile.id,
                    company="Acme",
                    title="Senior Engineer",
                    start_date=date(2020, 1, 1),
                    current=True,
                    achievements=["Cut p95 latency by 40%"],
                )
            )
            session.add(Skill(profile_id=profile.id, name="Python", level="EXPERT"))

        await session.commit()
        return user


@pytest.fixture
def make_user():
    """Async factory: ``user = await make_user(balance=Decimal("1"))``."""
    return create_user


async def first_template_id(doc_type: str = "CV") -> uuid.UUID:
    from sqlalchemy import select

    from cvbuilder.db.base import get_session_factory
    from cvbuilder.db.models.template import Template

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(Template.id).where(Template.type == doc_type, Template.active.is_(True)).order_by(Template.name)
        )
        return result.scalars().first()


@pytest.fixture
def template_id():
    """Async lookup of a seeded template id by type."""
    return first_template_id


@pytest.fixture
def failing_ai():
    """FakeAIService whose every call raises AIProviderError."""
    from cvbuilder.core.exceptions import AIProviderError

    return FakeAIService(fail_with=AIProviderError("AI provider request failed: APIConnectionError"))

"""Idempotent seed data: system config defaults, credit packs and templates."""

from decimal import Decimal

import structlog
from sqlalchemy import select

from cvbuilder.core.config import get_settings
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.credit_pack import CreditPack
from cvbuilder.db.models.system_config import SystemConfig
from cvbuilder.db.models.template import Template
from cvbuilder.db.models.user import User
from cvbuilder.domain.credits import SYSTEM_CONFIG_DEFAULTS
from cvbuilder.domain.documents import UserRole

logger = structlog.get_logger(__name__)

CREDIT_PACKS = [
    {
        "slug": "starter",
        "name": "Starter",
        "credits": 25,
        "price": Decimal("9.99"),
        "popular": False,
        "features": ["25 AI generations", "All templates", "PDF export"],
    },
    {
        "slug": "pro",
        "name": "Pro",
        "credits": 100,
        "price": Decimal("29.99"),
        "popular": True,
        "features": ["100 AI generations", "All templates", "PDF export", "Priority processing"],
    },
    {
        "slug": "enterprise",
        "name": "Enterprise",
        "credits": 500,
        "price": Decimal("99.99"),
        "popular": False,
        "features": ["500 AI generations", "All templates", "PDF export", "Priority processing", "Version history"],
    },
]


def _sections(*items: tuple[str, str, str, bool]) -> list[dict]:
    return [
        {"id": sid, "type": stype, "title": title, "required": required, "order": i}
        for i, (sid, stype, title, required) in enumerate(items, start=1)
    ]


TEMPLATES = [
    {
        "slug": "modern-minimal",
        "name": "Modern Minimal",
        "type": "CV",
        "description": "A clean, single-column design with lots of whitespace. Perfect for tech and startup roles.",
        "is_premium": False,
        "default_sections": _sections(
            ("header", "header", "Header", True),
            ("summary", "summary", "Professional Summary", False),
            ("experience", "experience", "Work Experience", True),
            ("education", "education", "Education", True),
            ("skills", "skills", "Skills", False),
            ("projects", "projects", "Projects", False),
        ),
        "styles": {"layout": "single-column", "colorScheme": ["#2563eb", "#1e293b", "#64748b"], "fonts": ["Inter", "system-ui"]},
    },
    {
        "slug": "professional-classic",
        "name": "Professional Classic",
        "type": "CV",
        "description": "Traditional two-column layout. Ideal for corporate and finance positions.",
        "is_premium": False,
        "default_sections": _sections(
            ("header", "header", "Header", True),
            ("summary", "summary", "Profile", False),
            ("experience", "experience", "Professional Experience", True),
            ("education", "education", "Education", True),
            ("skills", "skills", "Core Competencies", False),
            ("certifications", "certifications", "Certifications", False),
        ),
        "styles": {"layout": "two-column", "colorScheme": ["#1e40af", "#111827", "#6b7280"], "fonts": ["Roboto", "Arial"]},
    },
    {
        "slug": "tech-focused",
        "name": "Tech Focused",
        "type": "CV",
        "description": "Skill badges and project highlights up front. Built for developers.",
        "is_premium": True,
        "default_sections": _sections(
            ("header", "header", "Header", True),
            ("summary", "summary", "Summary", False),
            ("skills", "skills", "Tech Stack", False),
            ("experience", "experience", "Experience", True),
            ("projects", "projects", "Projects", False),
            ("education", "education", "Education", True),
        ),
        "styles": {"layout": "single-column", "colorScheme": ["#22c55e", "#0d1117", "#8b949e"], "fonts": ["JetBrains Mono", "monospace"]},
    },
    {
        "slug": "executive",
        "name": "Executive",
        "type": "CV",
        "description": "Elegant design for senior professionals and executives.",
        "is_premium": True,
        "default_sections": _sections(
            ("header", "header", "Header", True),
            ("summary", "summary", "Executive Summary", False),
            ("experience", "experience", "Leadership Experience", True),
            ("education", "education", "Education", True),
            ("certifications", "certifications", "Board Memberships & Certifications", False),
        ),
        "styles": {"layout": "two-column", "colorScheme": ["#0f172a", "#334155", "#94a3b8"], "fonts": ["Playfair Display", "Georgia"]},
    },
    {
        "slug": "simple-cover-letter",
        "name": "Simple Cover Letter",
        "type": "COVER_LETTER",
        "description": "Clean and professional cover letter template.",
        "is_premium": False,
        "default_sections": _sections(
            ("header", "header", "Header", True),
            ("greeting", "greeting", "Greeting", True),
            ("opening", "paragraph", "Opening Paragraph", True),
            ("body", "paragraph", "Body", True),
            ("closing", "paragraph", "Closing", True),
            ("signature", "signature", "Signature", True),
        ),
        "styles": {"layout": "single-column", "colorScheme": ["#2563eb", "#1e293b", "#64748b"], "fonts": ["Inter", "system-ui"]},
    },
]


async def seed_system_config() -> None:
    """Insert missing system_config keys. Existing (admin-edited) values are left alone."""
    factory = get_session_factory()

    async with factory() as session:
        result = await session.execute(select(SystemConfig.key))
        existing = set(result.scalars().all())

        for key, (value, description) in SYSTEM_CONFIG_DEFAULTS.items():
            if key not in existing:
                session.add(SystemConfig(key=key, value=value, description=description))

        await session.commit()


async def seed_credit_packs() -> None:
    """Insert default credit packs if they don't already exist."""
    factory = get_session_factory()

    async with factory() as session:
        for pack_data in CREDIT_PACKS:
            result = await session.execute(select(CreditPack).where(CreditPack.slug == pack_data["slug"]))
            if result.scalar_one_or_none() is None:
                session.add(CreditPack(**pack_data))

        await session.commit()


async def seed_templates() -> None:
    """Insert default templates if they don't already exist."""
    factory = get_session_factory()

    async with factory() as session:
        for template_data in TEMPLATES:
            result = await session.execute(select(Template).where(Template.slug == template_data["slug"]))
            if result.scalar_one_or_none() is None:
                session.add(Template(**template_data))

        await session.commit()


async def promote_bootstrap_admin() -> None:
    """Give the ADMIN role to the account named by ``BOOTSTRAP_ADMIN_EMAIL``, if it exists."""
    email = get_settings().bootstrap_admin_email
    if not email:
        return

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        if user is None or user.role == UserRole.ADMIN:
            return
        user.role = UserRole.ADMIN
        await session.commit()
        logger.info("bootstrap_admin_promoted", user_id=str(user.id))


async def seed_all() -> None:
    await seed_system_config()
    await seed_credit_packs()
    await seed_templates()
    await promote_bootstrap_admin()

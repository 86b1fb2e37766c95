"""Profile reads and section CRUD, plus the prompt-facing profile snapshot."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cvbuilder.db.models.profile import (
    Certification,
    Education,
    Experience,
    Language,
    Profile,
    ProfileProject,
    Skill,
)
from cvbuilder.domain.documents import (
    COVER_LETTER_MAX_EDUCATION,
    COVER_LETTER_MAX_EXPERIENCES,
    COVER_LETTER_MAX_SKILLS,
    DocumentType,
)

# URL segment -> model for the repeatable profile sections
SECTION_MODELS = {
    "experiences": Experience,
    "educations": Education,
    "skills": Skill,
    "projects": ProfileProject,
    "certifications": Certification,
    "languages": Language,
}

BASIC_FIELDS = ("headline", "summary", "phone", "location", "website", "linkedin_url", "github_url")


async def get_profile(session: AsyncSession, user_id: uuid.UUID) -> Profile | None:
    result = await session.execute(select(Profile).where(Profile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_profile(session: AsyncSession, user_id: uuid.UUID) -> Profile:
    profile = await get_profile(session, user_id)
    if profile is None:
        profile = Profile(user_id=user_id)
        session.add(profile)
        await session.flush()
        await session.refresh(profile)
    return profile


async def update_basics(session: AsyncSession, user_id: uuid.UUID, data: dict) -> Profile:
    profile = await get_or_create_profile(session, user_id)
    for key in BASIC_FIELDS:
        if key in data:
            setattr(profile, key, data[key])
    await session.flush()
    return profile


async def add_section_item(session: AsyncSession, user_id: uuid.UUID, section: str, data: dict):
    model = SECTION_MODELS[section]
    profile = await get_or_create_profile(session, user_id)
    item = model(profile_id=profile.id, **data)
    session.add(item)
    await session.flush()
    return item


async def _owned_item(session: AsyncSession, user_id: uuid.UUID, section: str, item_id: uuid.UUID):
    model = SECTION_MODELS[section]
    result = await session.execute(
        select(model).join(Profile, Profile.id == model.profile_id).where(model.id == item_id, Profile.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def update_section_item(
    session: AsyncSession, user_id: uuid.UUID, section: str, item_id: uuid.UUID, data: dict
):
    """Patch an item the user owns. Returns None if it doesn't exist for them."""
    item = await _owned_item(session, user_id, section, item_id)
    if item is None:
        return None
    for key, value in data.items():
        setattr(item, key, value)
    await session.flush()
    return item


async def delete_section_item(session: AsyncSession, user_id: uuid.UUID, section: str, item_id: uuid.UUID) -> bool:
    item = await _owned_item(session, user_id, section, item_id)
    if item is None:
        return False
    await session.delete(item)
    await session.flush()
    return True


def _dates(value):
    return value.isoformat() if value else None


def profile_snapshot(profile: Profile, name: str | None, doc_type: DocumentType) -> dict:
    """Plain-dict view of the profile for prompt building.

    Cover letters only see the latest experiences, educations and skills.
    """
    experiences = sorted(profile.experiences, key=lambda e: e.start_date, reverse=True)
    educations = sorted(profile.educations, key=lambda e: e.start_date, reverse=True)
    skills = list(profile.skills)
    if doc_type == DocumentType.COVER_LETTER:
        experiences = experiences[:COVER_LETTER_MAX_EXPERIENCES]
        educations = educations[:COVER_LETTER_MAX_EDUCATION]
        skills = skills[:COVER_LETTER_MAX_SKILLS]

    snapshot = {
        "name": name,
        "headline": profile.headline,
        "summary": profile.summary,
        "location": profile.location,
        "experiences": [
            {
                "company": e.company,
                "title": e.title,
                "location": e.location,
                "start_date": _dates(e.start_date),
                "end_date": _dates(e.end_date),
                "current": e.current,
                "description": e.description,
                "achievements": list(e.achievements or []),
            }
            for e in experiences
        ],
        "educations": [
            {
                "institution": e.institution,
                "degree": e.degree,
                "field": e.field,
                "start_date": _dates(e.start_date),
                "end_date": _dates(e.end_date),
                "gpa": e.gpa,
            }
            for e in educations
        ],
        "skills": [{"name": s.name, "level": s.level, "category": s.category} for s in skills],
    }
    if doc_type == DocumentType.CV:
        snapshot["projects"] = [
            {"name": p.name, "description": p.description, "technologies": list(p.technologies or []), "url": p.url}
            for p in profile.projects
        ]
        snapshot["certifications"] = [
            {"name": c.name, "issuer": c.issuer, "issue_date": _dates(c.issue_date)} for c in profile.certifications
        ]
        snapshot["languages"] = [{"name": lang.name, "proficiency": lang.proficiency} for lang in profile.languages]
    return snapshot

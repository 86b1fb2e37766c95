"""Profile routes: basic fields plus CRUD for each repeatable section."""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from cvbuilder.api.schemas.profile import SECTION_SCHEMAS, ProfileResponse, ProfileUpdate
from cvbuilder.core.auth import AuthUser, require_auth
from cvbuilder.db.base import get_session_factory
from cvbuilder.services import profile_service

logger = structlog.get_logger(__name__)

router = APIRouter()


def _section_schemas(section: str):
    if section not in SECTION_SCHEMAS:
        raise HTTPException(status_code=404, detail=f"Unknown profile section '{section}'")
    return SECTION_SCHEMAS[section]


async def _load_profile_response(session, user_id: uuid.UUID) -> ProfileResponse:
    profile = await profile_service.get_or_create_profile(session, user_id)
    # Sections are selectin-loaded; refresh so items added in this session show up
    await session.refresh(profile, list(profile_service.SECTION_MODELS))
    return ProfileResponse.model_validate(profile)


@router.get("", response_model=ProfileResponse)
async def get_profile(user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        response = await _load_profile_response(session, user.user_id)
        await session.commit()
    return response


@router.put("", response_model=ProfileResponse)
async def update_profile(body: ProfileUpdate, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        await profile_service.update_basics(session, user.user_id, body.model_dump(exclude_unset=True))
        await session.commit()
        response = await _load_profile_response(session, user.user_id)

    logger.info("profile_updated", user_id=str(user.user_id))
    return response


@router.post("/{section}", status_code=201)
async def add_section_item(section: str, request: Request, user: AuthUser = Depends(require_auth)):
    """Add an item to ``section`` (experiences, educations, skills, ...)."""
    in_schema, out_schema = _section_schemas(section)
    data = _validate(in_schema, await request.json())

    factory = get_session_factory()
    async with factory() as session:
        item = await profile_service.add_section_item(session, user.user_id, section, data)
        await session.commit()
        response = out_schema.model_validate(item)

    logger.info("profile_item_added", user_id=str(user.user_id), section=section)
    return response


@router.put("/{section}/{item_id}")
async def update_section_item(
    section: str, item_id: uuid.UUID, request: Request, user: AuthUser = Depends(require_auth)
):
    in_schema, out_schema = _section_schemas(section)
    data = _validate(in_schema, await request.json())

    factory = get_session_factory()
    async with factory() as session:
        item = await profile_service.update_section_item(session, user.user_id, section, item_id, data)
        if item is None:
            raise HTTPException(status_code=404, detail="Item not found")
        await session.commit()
        return out_schema.model_validate(item)


@router.delete("/{section}/{item_id}", status_code=204)
async def delete_section_item(section: str, item_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    _section_schemas(section)
    factory = get_session_factory()
    async with factory() as session:
        if not await profile_service.delete_section_item(session, user.user_id, section, item_id):
            raise HTTPException(status_code=404, detail="Item not found")
        await session.commit()


def _validate(schema, payload) -> dict:
    """Validate a JSON body against the section schema; PUT replaces the whole item."""
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="Request body must be a JSON object")
    try:
        return schema.model_validate(payload).model_dump()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

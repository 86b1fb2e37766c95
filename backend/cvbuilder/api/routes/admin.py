"""Admin API routes: users and credits, AI providers, catalogue and system config."""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from cvbuilder.api.schemas.admin import (
    AdminCreditPackResponse,
    AdminPromoCodeResponse,
    AdminTemplateResponse,
    AdminUserList,
    AdminUserSummary,
    AIProviderCreate,
    AIProviderResponse,
    AIProviderUpdate,
    CreditPackCreate,
    CreditPackUpdate,
    GrantCreditsRequest,
    GrantCreditsResponse,
    PromoCodeCreate,
    PromoCodeUpdate,
    SystemConfigItem,
    SystemConfigUpsert,
    TemplateCreate,
    TemplateUpdate,
    UserRoleUpdate,
)
from cvbuilder.core.auth import AuthUser, require_admin
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.ai_provider import AIProvider
from cvbuilder.db.models.credit_pack import CreditPack
from cvbuilder.db.models.document import Document
from cvbuilder.db.models.promo_code import PromoCode
from cvbuilder.db.models.template import Template
from cvbuilder.db.models.user import User
from cvbuilder.db.models.user_credits import UserCredits
from cvbuilder.domain.credits import CreditAction, to_credits
from cvbuilder.services import credit_service
from cvbuilder.services.system_config_service import list_config, upsert_config

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

ZERO = to_credits(0)


async def _get_or_404(session, model, item_id: uuid.UUID, label: str):
    item = await session.get(model, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return item


async def _commit_or_409(session, detail: str) -> None:
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=409, detail=detail)


# ---------- Users ----------


@router.get("/users", response_model=AdminUserList)
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    search: str | None = None,
    _: AuthUser = Depends(require_admin),
):
    """Paginated user list with balances and document counts."""
    doc_counts = (
        select(Document.user_id, func.count(Document.id).label("document_count"))
        .group_by(Document.user_id)
        .subquery()
    )

    factory = get_session_factory()
    async with factory() as session:
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(or_(User.email.ilike(pattern), User.name.ilike(pattern)))

        total = (await session.execute(select(func.count(User.id)).where(*filters))).scalar_one()

        query = (
            select(User, UserCredits, func.coalesce(doc_counts.c.document_count, 0))
            .outerjoin(UserCredits, UserCredits.user_id == User.id)
            .outerjoin(doc_counts, doc_counts.c.user_id == User.id)
            .where(*filters)
            .order_by(User.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        rows = (await session.execute(query)).all()

    users = [
        AdminUserSummary(
            id=u.id,
            email=u.email,
            name=u.name,
            role=u.role,
            email_verified=u.email_verified_at is not None,
            balance=to_credits(c.balance) if c else ZERO,
            total_purchased=to_credits(c.total_purchased) if c else ZERO,
            total_used=to_credits(c.total_used) if c else ZERO,
            document_count=count,
            created_at=u.created_at,
        )
        for u, c, count in rows
    ]
    return AdminUserList(users=users, total=total, page=page, per_page=per_page)


@router.post("/users/{user_id}/credits", response_model=GrantCreditsResponse)
async def grant_credits(user_id: uuid.UUID, body: GrantCreditsRequest, admin: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        await _get_or_404(session, User, user_id, "User")

    await credit_service.grant(
        user_id,
        body.credits,
        CreditAction.ADMIN_GRANT,
        description=body.reason,
        metadata={"granted_by": str(admin.user_id)},
    )
    logger.info("admin_credits_granted", admin_id=str(admin.user_id), user_id=str(user_id), credits=str(body.credits))
    return GrantCreditsResponse(
        user_id=user_id,
        credits_added=to_credits(body.credits),
        balance=await credit_service.get_balance(user_id),
    )


@router.put("/users/{user_id}/role", response_model=AdminUserSummary)
async def update_user_role(user_id: uuid.UUID, body: UserRoleUpdate, admin: AuthUser = Depends(require_admin)):
    if user_id == admin.user_id and body.role != "ADMIN":
        raise HTTPException(status_code=400, detail="Admins cannot demote themselves")

    factory = get_session_factory()
    async with factory() as session:
        user = await _get_or_404(session, User, user_id, "User")
        user.role = body.role
        await session.commit()

    credits = await credit_service.get_or_create_credits(user_id)
    async with factory() as session:
        count = (
            await session.execute(select(func.count(Document.id)).where(Document.user_id == user_id))
        ).scalar_one()

    logger.info("admin_role_changed", admin_id=str(admin.user_id), user_id=str(user_id), role=body.role)
    return AdminUserSummary(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        email_verified=user.email_verified_at is not None,
        balance=to_credits(credits.balance),
        total_purchased=to_credits(credits.total_purchased),
        total_used=to_credits(credits.total_used),
        document_count=count,
        created_at=user.created_at,
    )


# ---------- AI providers ----------


async def _clear_primary(session, keep_id: uuid.UUID | None) -> None:
    """Only one provider may be primary."""
    stmt = update(AIProvider).values(is_primary=False).execution_options(synchronize_session=False)
    if keep_id is not None:
        stmt = stmt.where(AIProvider.id != keep_id)
    await session.execute(stmt)


@router.get("/ai-providers", response_model=list[AIProviderResponse])
async def list_ai_providers(_: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(AIProvider).order_by(AIProvider.is_primary.desc(), AIProvider.name))
        return [AIProviderResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/ai-providers", response_model=AIProviderResponse, status_code=201)
async def create_ai_provider(body: AIProviderCreate, admin: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        provider = AIProvider(**body.model_dump())
        session.add(provider)
        await session.flush()
        if provider.is_primary:
            await _clear_primary(session, provider.id)
        await session.commit()

    logger.info("ai_provider_created", admin_id=str(admin.user_id), provider_id=str(provider.id), type=provider.type)
    return AIProviderResponse.model_validate(provider)


@router.put("/ai-providers/{provider_id}", response_model=AIProviderResponse)
async def update_ai_provider(provider_id: uuid.UUID, body: AIProviderUpdate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        provider = await _get_or_404(session, AIProvider, provider_id, "AI provider")
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(provider, field, value)
        if body.is_primary:
            await _clear_primary(session, provider.id)
        await session.commit()
        await session.refresh(provider)
        return AIProviderResponse.model_validate(provider)


@router.delete("/ai-providers/{provider_id}", status_code=204)
async def delete_ai_provider(provider_id: uuid.UUID, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        provider = await _get_or_404(session, AIProvider, provider_id, "AI provider")
        await session.delete(provider)
        await session.commit()


# ---------- Credit packs ----------


@router.get("/credit-packs", response_model=list[AdminCreditPackResponse])
async def list_credit_packs(_: AuthUser = Depends(require_admin)):
    """All packs, including inactive ones."""
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(CreditPack).order_by(CreditPack.price))
        return [AdminCreditPackResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/credit-packs", response_model=AdminCreditPackResponse, status_code=201)
async def create_credit_pack(body: CreditPackCreate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        pack = CreditPack(**body.model_dump())
        session.add(pack)
        await _commit_or_409(session, "A credit pack with this slug already exists")
        return AdminCreditPackResponse.model_validate(pack)


@router.put("/credit-packs/{pack_id}", response_model=AdminCreditPackResponse)
async def update_credit_pack(pack_id: uuid.UUID, body: CreditPackUpdate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        pack = await _get_or_404(session, CreditPack, pack_id, "Credit pack")
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(pack, field, value)
        await session.commit()
        await session.refresh(pack)
        return AdminCreditPackResponse.model_validate(pack)


@router.delete("/credit-packs/{pack_id}", status_code=204)
async def delete_credit_pack(pack_id: uuid.UUID, _: AuthUser = Depends(require_admin)):
    """Deactivate rather than delete; payments keep referring to the pack."""
    factory = get_session_factory()
    async with factory() as session:
        pack = await _get_or_404(session, CreditPack, pack_id, "Credit pack")
        pack.active = False
        await session.commit()


# ---------- Promo codes ----------


@router.get("/promo-codes", response_model=list[AdminPromoCodeResponse])
async def list_promo_codes(_: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(PromoCode).order_by(PromoCode.created_at.desc()))
        return [AdminPromoCodeResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/promo-codes", response_model=AdminPromoCodeResponse, status_code=201)
async def create_promo_code(body: PromoCodeCreate, admin: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        promo = PromoCode(**body.model_dump())
        session.add(promo)
        await _commit_or_409(session, "Promo code already exists")

    logger.info("promo_code_created", admin_id=str(admin.user_id), code=promo.code)
    return AdminPromoCodeResponse.model_validate(promo)


@router.put("/promo-codes/{promo_id}", response_model=AdminPromoCodeResponse)
async def update_promo_code(promo_id: uuid.UUID, body: PromoCodeUpdate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        promo = await _get_or_404(session, PromoCode, promo_id, "Promo code")
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(promo, field, value)
        await session.commit()
        await session.refresh(promo)
        return AdminPromoCodeResponse.model_validate(promo)


@router.delete("/promo-codes/{promo_id}", status_code=204)
async def delete_promo_code(promo_id: uuid.UUID, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        promo = await _get_or_404(session, PromoCode, promo_id, "Promo code")
        await session.delete(promo)
        await session.commit()


# ---------- Templates ----------


@router.get("/templates", response_model=list[AdminTemplateResponse])
async def list_templates(_: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(Template).order_by(Template.type, Template.name))
        return [AdminTemplateResponse.model_validate(t) for t in result.scalars().all()]


@router.post("/templates", response_model=AdminTemplateResponse, status_code=201)
async def create_template(body: TemplateCreate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        template = Template(**body.model_dump())
        session.add(template)
        await _commit_or_409(session, "A template with this slug already exists")
        return AdminTemplateResponse.model_validate(template)


@router.put("/templates/{template_id}", response_model=AdminTemplateResponse)
async def update_template(template_id: uuid.UUID, body: TemplateUpdate, _: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        template = await _get_or_404(session, Template, template_id, "Template")
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(template, field, value)
        await session.commit()
        await session.refresh(template)
        return AdminTemplateResponse.model_validate(template)


@router.delete("/templates/{template_id}", status_code=204)
async def delete_template(template_id: uuid.UUID, _: AuthUser = Depends(require_admin)):
    """Deactivate; existing documents keep rendering with it."""
    factory = get_session_factory()
    async with factory() as session:
        template = await _get_or_404(session, Template, template_id, "Template")
        template.active = False
        await session.commit()


# ---------- System config ----------


@router.get("/config", response_model=list[SystemConfigItem])
async def get_system_config(_: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        return await list_config(session)


@router.put("/config/{key}", response_model=SystemConfigItem)
async def upsert_system_config(key: str, body: SystemConfigUpsert, admin: AuthUser = Depends(require_admin)):
    factory = get_session_factory()
    async with factory() as session:
        row = await upsert_config(session, key, body.value, body.description)
        await session.commit()
        item = SystemConfigItem(key=row.key, value=row.value, description=row.description)

    logger.info("system_config_updated", admin_id=str(admin.user_id), key=key)
    return item

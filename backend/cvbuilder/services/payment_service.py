"""Credit purchases through Stripe Checkout, webhook fulfilment and promo codes.

Purchases are one-off ``mode="payment"`` Checkout Sessions. A PENDING payment
row is written when the session is created; the signed
``checkout.session.completed`` webhook completes it and grants the credits.
The webhook event id is claimed in the same transaction that grants the
credits, so a redelivered event can never credit twice.

The PaymentIntent behind a session is created by Stripe, so its id is unknown
until the session completes. The payment row id travels in the intent metadata
instead, which is how a ``payment_intent.payment_failed`` finds its row.
"""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import stripe
import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cvbuilder.core.config import get_settings
from cvbuilder.core.exceptions import CreditPackNotFoundError, PaymentNotConfiguredError, PromoCodeError
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.credit_pack import CreditPack
from cvbuilder.db.models.payment import Payment
from cvbuilder.db.models.promo_code import PromoCode, PromoRedemption
from cvbuilder.db.models.stripe_event import StripeWebhookEvent
from cvbuilder.db.models.user import User
from cvbuilder.db.seed import CREDIT_PACKS
from cvbuilder.domain.credits import CreditAction, to_credits
from cvbuilder.domain.documents import PaymentStatus
from cvbuilder.services import credit_service
from cvbuilder.services.email_service import get_email_service

logger = structlog.get_logger(__name__)

PAYMENT_HISTORY_LIMIT = 50


def _get_stripe() -> None:
    """Configure the stripe module with the secret key."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise PaymentNotConfiguredError("Payment system not configured")
    stripe.api_key = settings.stripe_secret_key


# ── Credit packs ────────────────────────────────────────────────────


async def list_credit_packs() -> list[dict]:
    """Active packs cheapest first; the built-in catalogue when the table is empty."""
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(CreditPack).where(CreditPack.active.is_(True)).order_by(CreditPack.price.asc())
        )
        packs = result.scalars().all()

    if not packs:
        return [
            {"id": p["slug"], "currency": "USD", "stripe_price_id": None, **p}
            for p in CREDIT_PACKS
        ]

    return [
        {
            "id": str(p.id),
            "slug": p.slug,
            "name": p.name,
            "credits": p.credits,
            "price": p.price,
            "currency": p.currency,
            "popular": p.popular,
            "features": list(p.features or []),
            "stripe_price_id": p.stripe_price_id,
        }
        for p in packs
    ]


async def _find_active_pack(session: AsyncSession, pack_id: str) -> CreditPack:
    try:
        condition = CreditPack.id == uuid.UUID(pack_id)
    except ValueError:
        condition = CreditPack.slug == pack_id
    result = await session.execute(select(CreditPack).where(condition, CreditPack.active.is_(True)))
    pack = result.scalar_one_or_none()
    if pack is None:
        raise CreditPackNotFoundError("Credit pack not found or inactive")
    return pack


# ── Checkout ────────────────────────────────────────────────────────


async def _get_or_create_stripe_customer(user_id: uuid.UUID) -> str:
    """Return the Stripe customer ID, creating one if needed."""
    factory = get_session_factory()
    async with factory() as session:
        user = await session.get(User, user_id)
        if user.stripe_customer_id:
            return user.stripe_customer_id
        email, name = user.email, user.name

    customer = await stripe.Customer.create_async(
        email=email,
        name=name,
        metadata={"user_id": str(user_id)},
    )

    async with factory() as session:
        try:
            user = await session.get(User, user_id)
            if user.stripe_customer_id:
                # Concurrent request stored one first
                return user.stripe_customer_id
            user.stripe_customer_id = customer.id
            await session.commit()
        except IntegrityError:
            await session.rollback()
            user = await session.get(User, user_id)
            return user.stripe_customer_id

    return customer.id


async def create_checkout(
    user_id: uuid.UUID,
    pack_id: str,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> dict:
    """Create a Checkout Session for a credit pack and record a PENDING payment.

    Raises:
        PaymentNotConfiguredError: no Stripe secret key
        CreditPackNotFoundError: unknown or inactive pack
    """
    _get_stripe()
    settings = get_settings()

    factory = get_session_factory()
    async with factory() as session:
        pack = await _find_active_pack(session, pack_id)
        pack_uuid, pack_name, pack_credits = pack.id, pack.name, pack.credits
        price, currency, price_id = to_credits(pack.price), pack.currency, pack.stripe_price_id

    customer_id = await _get_or_create_stripe_customer(user_id)
    payment_id = uuid.uuid4()

    if price_id:
        line_item = {"price": price_id, "quantity": 1}
    else:
        line_item = {
            "price_data": {
                "currency": currency.lower() or settings.stripe_currency,
                "product_data": {
                    "name": pack_name,
                    "description": f"{pack_credits} credits for CV and cover letter generation",
                },
                "unit_amount": int(price * 100),
            },
            "quantity": 1,
        }

    checkout_session = await stripe.checkout.Session.create_async(
        customer=customer_id,
        mode="payment",
        payment_method_types=["card"],
        line_items=[line_item],
        success_url=success_url or f"{settings.frontend_url}/credits?success=true&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=cancel_url or f"{settings.frontend_url}/credits?canceled=true",
        metadata={
            "user_id": str(user_id),
            "credit_pack_id": str(pack_uuid),
            "credits": str(pack_credits),
        },
        payment_intent_data={
            "metadata": {
                "payment_id": str(payment_id),
                "user_id": str(user_id),
                "credit_pack_id": str(pack_uuid),
            },
        },
    )

    async with factory() as session:
        session.add(
            Payment(
                id=payment_id,
                user_id=user_id,
                amount=price,
                currency=currency,
                status=PaymentStatus.PENDING.value,
                stripe_session_id=checkout_session.id,
                credit_pack_id=pack_uuid,
            )
        )
        await session.commit()

    logger.info("checkout_session_created", user_id=str(user_id), pack_id=str(pack_uuid), session_id=checkout_session.id)
    return {"url": checkout_session.url, "session_id": checkout_session.id}


# ── Webhook fulfilment ──────────────────────────────────────────────


async def handle_event(event) -> bool:
    """Apply a verified Stripe event. Returns False for an already-processed id."""
    event_id = event["id"]
    event_type = event["type"]
    data = event["data"]["object"]

    factory = get_session_factory()
    async with factory() as session:
        session.add(StripeWebhookEvent(event_id=event_id, event_type=event_type))
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            logger.info("stripe_duplicate_event_ignored", event_id=event_id)
            return False

        after_commit = None
        if event_type == "checkout.session.completed":
            after_commit = await _handle_checkout_completed(session, data)
        elif event_type == "checkout.session.expired":
            await _mark_failed(session, Payment.stripe_session_id == data.get("id"), "checkout_expired")
        elif event_type == "payment_intent.payment_failed":
            await _mark_failed(
                session, _intent_payment(data), "payment_intent_failed", stripe_payment_id=data.get("id")
            )
        else:
            logger.info("stripe_event_unhandled", event_type=event_type)

        await session.commit()

    if after_commit is not None:
        await after_commit()
    return True


async def _handle_checkout_completed(session: AsyncSession, data: dict):
    """Complete the payment and grant its credits inside the event transaction."""
    metadata = data.get("metadata") or {}
    user_id_raw = metadata.get("user_id")
    credits_raw = metadata.get("credits")
    if not user_id_raw or not credits_raw:
        logger.warning("checkout_completed_missing_metadata", session_id=data.get("id"))
        return None

    user_id = uuid.UUID(user_id_raw)
    credits = int(credits_raw)
    pack_id = metadata.get("credit_pack_id")
    amount = Decimal(data.get("amount_total") or 0) / 100
    currency = (data.get("currency") or "usd").upper()

    result = await session.execute(select(Payment).where(Payment.stripe_session_id == data["id"]))
    payment = result.scalar_one_or_none()
    if payment is None:
        payment = Payment(
            user_id=user_id,
            amount=amount,
            currency=currency,
            stripe_session_id=data["id"],
            credit_pack_id=uuid.UUID(pack_id) if pack_id else None,
        )
        session.add(payment)
    payment.status = PaymentStatus.COMPLETED.value
    payment.stripe_payment_id = data.get("payment_intent")
    await session.flush()

    await credit_service.grant(
        user_id,
        Decimal(credits),
        CreditAction.PURCHASE,
        description=f"Purchased {credits} credits",
        metadata={"payment_id": str(payment.id), "stripe_session_id": data["id"]},
        session=session,
    )

    user = await session.get(User, user_id)
    paid = str(to_credits(payment.amount))
    logger.info("credits_purchased", user_id=str(user_id), credits=credits, amount=paid)

    async def _confirm() -> None:
        if user is not None:
            await get_email_service().send_purchase_confirmation(user.email, user.name, credits, paid, currency)

    return _confirm


def _intent_payment(data: dict):
    """Match a PaymentIntent to its row by the payment id in its metadata."""
    payment_id = (data.get("metadata") or {}).get("payment_id")
    if payment_id:
        try:
            return Payment.id == uuid.UUID(payment_id)
        except ValueError:
            logger.warning("payment_intent_bad_metadata", payment_intent=data.get("id"), payment_id=payment_id)
    return Payment.stripe_payment_id == data.get("id")


async def _mark_failed(session: AsyncSession, condition, reason: str, **values) -> None:
    result = await session.execute(
        update(Payment)
        .where(condition, Payment.status == PaymentStatus.PENDING.value)
        .values(status=PaymentStatus.FAILED.value, **values)
        .execution_options(synchronize_session=False)
    )
    logger.info("payment_marked_failed", reason=reason, rows=result.rowcount)


# ── Promo codes ─────────────────────────────────────────────────────


async def redeem_promo_code(user_id: uuid.UUID, code: str) -> Decimal:
    """Redeem ``code`` for ``user_id`` and return the credits granted.

    Raises:
        PromoCodeError: unknown, inactive, expired, exhausted or already used
    """
    code = code.strip().upper()
    factory = get_session_factory()

    async with factory() as session:
        result = await session.execute(select(PromoCode).where(PromoCode.code == code))
        promo = result.scalar_one_or_none()

        if promo is None or not promo.active:
            raise PromoCodeError("Invalid promo code")
        expires_at = promo.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at is not None and expires_at < datetime.now(UTC):
            raise PromoCodeError("Promo code has expired")
        if promo.max_uses is not None and promo.used_count >= promo.max_uses:
            raise PromoCodeError("Promo code has reached maximum uses")

        existing = await session.execute(
            select(PromoRedemption.id).where(PromoRedemption.promo_code_id == promo.id, PromoRedemption.user_id == user_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise PromoCodeError("You have already used this promo code")

        # Conditional increment closes the race between the check above and here
        claimed = await session.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo.id,
                or_(PromoCode.max_uses.is_(None), PromoCode.used_count < PromoCode.max_uses),
            )
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise PromoCodeError("Promo code has reached maximum uses")

        credits = to_credits(promo.credits)
        session.add(PromoRedemption(promo_code_id=promo.id, user_id=user_id))
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise PromoCodeError("You have already used this promo code")

        await credit_service.grant(
            user_id,
            credits,
            CreditAction.PROMO_CODE,
            description=f"Promo code {code}",
            metadata={"promo_code": code},
            session=session,
        )
        await session.commit()

    logger.info("promo_code_redeemed", user_id=str(user_id), code=code, credits=str(credits))
    return credits


# ── Read models ─────────────────────────────────────────────────────


async def payment_history(user_id: uuid.UUID) -> list[Payment]:
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(PAYMENT_HISTORY_LIMIT)
        )
        return list(result.scalars().unique().all())


async def credits_summary(user_id: uuid.UUID) -> dict:
    credits = await credit_service.get_or_create_credits(user_id)
    balance = to_credits(credits.balance)
    return {
        "balance": balance,
        "total_purchased": to_credits(credits.total_purchased),
        "total_used": to_credits(credits.total_used),
        "is_low": await credit_service.is_low(balance),
        "recent_usage": await credit_service.recent_usage(user_id, limit=10),
    }

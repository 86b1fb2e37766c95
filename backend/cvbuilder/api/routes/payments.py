"""Payment routes: credit packs, balance, Stripe Checkout, webhooks and promo codes."""

import json

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from cvbuilder.api.errors import domain_errors
from cvbuilder.api.schemas.payments import (
    CheckoutRequest,
    CheckoutResponse,
    CreditPackResponse,
    CreditsSummaryResponse,
    CreditUsageResponse,
    PaymentResponse,
    PromoCodeRequest,
    PromoCodeResponse,
)
from cvbuilder.core.auth import AuthUser, require_auth
from cvbuilder.core.config import get_settings
from cvbuilder.services import credit_service, payment_service

logger = structlog.get_logger(__name__)

router = APIRouter()

CREDIT_HISTORY_LIMIT = 50


@router.get("/credit-packs", response_model=list[CreditPackResponse])
async def list_credit_packs():
    """Public catalogue of purchasable packs."""
    return await payment_service.list_credit_packs()


@router.get("/credits", response_model=CreditsSummaryResponse)
async def get_credits(user: AuthUser = Depends(require_auth)):
    return await payment_service.credits_summary(user.user_id)


@router.get("/credits/history", response_model=list[CreditUsageResponse])
async def credit_history(user: AuthUser = Depends(require_auth)):
    return await credit_service.recent_usage(user.user_id, limit=CREDIT_HISTORY_LIMIT)


@router.get("/history", response_model=list[PaymentResponse])
async def payment_history(user: AuthUser = Depends(require_auth)):
    return await payment_service.payment_history(user.user_id)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(body: CheckoutRequest, user: AuthUser = Depends(require_auth)):
    """Create a Stripe Checkout Session for a credit pack."""
    with domain_errors():
        session = await payment_service.create_checkout(
            user.user_id, body.credit_pack_id, body.success_url, body.cancel_url
        )
    return CheckoutResponse(**session)


@router.post("/promo-code", response_model=PromoCodeResponse)
async def redeem_promo_code(body: PromoCodeRequest, user: AuthUser = Depends(require_auth)):
    with domain_errors():
        credits = await payment_service.redeem_promo_code(user.user_id, body.code)
    return PromoCodeResponse(credits_added=credits, balance=await credit_service.get_balance(user.user_id))


@router.post("/webhook")
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events with signature verification."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Stripe webhook endpoint is not configured")

    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        stripe.Webhook.construct_event(body, sig_header, settings.stripe_webhook_secret)
        # Signature verified; the service works on the plain JSON event
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    logger.info("stripe_webhook_received", event_id=event["id"], event_type=event["type"])

    if not await payment_service.handle_event(event):
        return {"status": "ok", "duplicate": True}

    return {"status": "ok"}

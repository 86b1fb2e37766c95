"""Payments API Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CreditPackResponse(BaseModel):
    id: str
    slug: str | None = None
    name: str
    credits: int
    price: Decimal
    currency: str
    popular: bool
    features: list[str]


class CheckoutRequest(BaseModel):
    credit_pack_id: str = Field(..., min_length=1)
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class PromoCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)


class PromoCodeResponse(BaseModel):
    credits_added: Decimal
    balance: Decimal


class CreditUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    credits: Decimal
    action: str
    document_id: uuid.UUID | None
    description: str | None
    created_at: datetime


class CreditsSummaryResponse(BaseModel):
    balance: Decimal
    total_purchased: Decimal
    total_used: Decimal
    is_low: bool
    recent_usage: list[CreditUsageResponse]


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: Decimal
    currency: str
    status: str
    credit_pack_id: uuid.UUID | None
    created_at: datetime

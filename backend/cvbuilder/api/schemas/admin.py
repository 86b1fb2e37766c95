"""Admin API Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------- Users ----------


class AdminUserSummary(BaseModel):
    id: uuid.UUID
    email: str
    name: str | None
    role: str
    email_verified: bool
    balance: Decimal
    total_purchased: Decimal
    total_used: Decimal
    document_count: int
    created_at: datetime


class AdminUserList(BaseModel):
    users: list[AdminUserSummary]
    total: int
    page: int
    per_page: int


class GrantCreditsRequest(BaseModel):
    credits: Decimal = Field(..., gt=0, le=10_000, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=500)


class GrantCreditsResponse(BaseModel):
    user_id: uuid.UUID
    credits_added: Decimal
    balance: Decimal


class UserRoleUpdate(BaseModel):
    role: Literal["USER", "ADMIN"]


# ---------- AI providers ----------


class AIProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["OPENAI", "ANTHROPIC", "GOOGLE"]
    api_key: str = Field(..., min_length=1, max_length=500)
    model: str = Field(..., min_length=1, max_length=100)
    is_active: bool = True
    is_primary: bool = False
    max_tokens: int = Field(4096, ge=1, le=200_000)
    cost_per_token: Decimal = Field(Decimal("0"), ge=0)


class AIProviderUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    api_key: str | None = Field(None, min_length=1, max_length=500)
    model: str | None = Field(None, min_length=1, max_length=100)
    is_active: bool | None = None
    is_primary: bool | None = None
    max_tokens: int | None = Field(None, ge=1, le=200_000)
    cost_per_token: Decimal | None = Field(None, ge=0)


class AIProviderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    type: str
    api_key: str
    model: str
    is_active: bool
    is_primary: bool
    max_tokens: int
    cost_per_token: Decimal
    created_at: datetime

    @field_validator("api_key")
    @classmethod
    def _mask(cls, v: str) -> str:
        return mask_api_key(v)


def mask_api_key(key: str) -> str:
    """``sk-abcdef123456`` -> ``sk-a...3456``."""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


# ---------- Credit packs ----------


class CreditPackCreate(BaseModel):
    slug: str | None = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    credits: int = Field(..., gt=0)
    price: Decimal = Field(..., gt=0, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    active: bool = True
    popular: bool = False
    features: list[str] = []
    stripe_price_id: str | None = Field(None, max_length=255)


class CreditPackUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    credits: int | None = Field(None, gt=0)
    price: Decimal | None = Field(None, gt=0, decimal_places=2)
    currency: str | None = Field(None, min_length=3, max_length=3)
    active: bool | None = None
    popular: bool | None = None
    features: list[str] | None = None
    stripe_price_id: str | None = Field(None, max_length=255)


class AdminCreditPackResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str | None
    name: str
    credits: int
    price: Decimal
    currency: str
    active: bool
    popular: bool
    features: list[str]
    stripe_price_id: str | None


# ---------- Promo codes ----------


class PromoCodeCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    credits: Decimal = Field(..., gt=0, decimal_places=2)
    max_uses: int | None = Field(None, gt=0)
    expires_at: datetime | None = None
    active: bool = True

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class PromoCodeUpdate(BaseModel):
    credits: Decimal | None = Field(None, gt=0, decimal_places=2)
    max_uses: int | None = Field(None, gt=0)
    expires_at: datetime | None = None
    active: bool | None = None


class AdminPromoCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    credits: Decimal
    max_uses: int | None
    used_count: int
    expires_at: datetime | None
    active: bool
    created_at: datetime


# ---------- Templates ----------


class TemplateCreate(BaseModel):
    slug: str | None = Field(None, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["CV", "COVER_LETTER"]
    description: str = ""
    thumbnail: str | None = Field(None, max_length=500)
    is_premium: bool = False
    active: bool = True
    default_sections: list[dict] = []
    styles: dict = {}


class TemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    thumbnail: str | None = Field(None, max_length=500)
    is_premium: bool | None = None
    active: bool | None = None
    default_sections: list[dict] | None = None
    styles: dict | None = None


class AdminTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str | None
    name: str
    type: str
    description: str
    thumbnail: str | None
    is_premium: bool
    active: bool
    default_sections: list
    styles: dict


# ---------- System config ----------


class SystemConfigItem(BaseModel):
    key: str
    value: str
    description: str | None = None


class SystemConfigUpsert(BaseModel):
    value: str = Field(..., max_length=1000)
    description: str | None = Field(None, max_length=500)

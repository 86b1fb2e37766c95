"""Credit actions, costs and defaults.

Pure domain values with no I/O. Runtime overrides come from the
``system_config`` table; the values here are the fallbacks.
"""

from decimal import Decimal
from enum import StrEnum


class CreditAction(StrEnum):
    CV_GENERATION = "CV_GENERATION"
    COVER_LETTER_GENERATION = "COVER_LETTER_GENERATION"
    ATS_OPTIMIZATION = "ATS_OPTIMIZATION"
    PURCHASE = "PURCHASE"
    PROMO_CODE = "PROMO_CODE"
    ADMIN_GRANT = "ADMIN_GRANT"
    REFUND = "REFUND"


# Actions that spend credits and the system_config key holding their cost
SPEND_ACTIONS: dict[CreditAction, str] = {
    CreditAction.CV_GENERATION: "cv_generation_cost",
    CreditAction.COVER_LETTER_GENERATION: "cover_letter_cost",
    CreditAction.ATS_OPTIMIZATION: "ats_optimization_cost",
}

SYSTEM_CONFIG_DEFAULTS: dict[str, tuple[str, str]] = {
    "free_credits": ("3", "Credits granted to new accounts"),
    "cv_generation_cost": ("1", "Credits charged per AI CV generation"),
    "cover_letter_cost": ("1", "Credits charged per AI cover letter generation"),
    "ats_optimization_cost": ("0.5", "Credits charged per ATS score analysis"),
    "low_credit_threshold": ("2", "Balance at or below which a warning email is sent"),
    "watermark_free": ("true", "Watermark PDFs for users who never purchased credits"),
}

# Users whose lifetime purchases stay at or below this are treated as free tier
FREE_TIER_PURCHASE_CEILING = Decimal("3")


def to_credits(value: str | int | float | Decimal) -> Decimal:
    """Normalize a credit amount to two decimal places."""
    return Decimal(str(value)).quantize(Decimal("0.01"))

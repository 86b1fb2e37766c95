"""Re-export all models so Base.metadata sees them."""

from cvbuilder.db.models.ai_provider import AIProvider
from cvbuilder.db.models.credit_pack import CreditPack
from cvbuilder.db.models.credit_usage import CreditUsage
from cvbuilder.db.models.document import Document, DocumentVersion
from cvbuilder.db.models.payment import Payment
from cvbuilder.db.models.profile import (
    Certification,
    Education,
    Experience,
    Language,
    Profile,
    ProfileProject,
    Skill,
)
from cvbuilder.db.models.promo_code import PromoCode, PromoRedemption
from cvbuilder.db.models.stripe_event import StripeWebhookEvent
from cvbuilder.db.models.system_config import SystemConfig
from cvbuilder.db.models.template import Template
from cvbuilder.db.models.user import User
from cvbuilder.db.models.user_credits import UserCredits

__all__ = [
    "AIProvider",
    "Certification",
    "CreditPack",
    "CreditUsage",
    "Document",
    "DocumentVersion",
    "Education",
    "Experience",
    "Language",
    "Payment",
    "Profile",
    "ProfileProject",
    "PromoCode",
    "PromoRedemption",
    "Skill",
    "StripeWebhookEvent",
    "SystemConfig",
    "Template",
    "User",
    "UserCredits",
]

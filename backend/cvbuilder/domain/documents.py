"""Document types, tones and defaults shared by generation and rendering."""

from enum import StrEnum


class DocumentType(StrEnum):
    CV = "CV"
    COVER_LETTER = "COVER_LETTER"


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class AIProviderType(StrEnum):
    OPENAI = "OPENAI"
    ANTHROPIC = "ANTHROPIC"
    GOOGLE = "GOOGLE"


class UserRole(StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"


CV_TONES = ("professional", "creative", "technical", "executive", "formal", "casual")
COVER_LETTER_TONES = ("formal", "friendly", "enthusiastic", "professional")

DEFAULT_CUSTOMIZATIONS: dict[str, str] = {
    "primaryColor": "#2563eb",
    "secondaryColor": "#64748b",
    "fontFamily": "Inter",
    "fontSize": "11pt",
    "spacing": "normal",
}

MAX_VERSIONS = 10

# Cover letters only see the most recent slice of the profile
COVER_LETTER_MAX_EXPERIENCES = 3
COVER_LETTER_MAX_EDUCATION = 2
COVER_LETTER_MAX_SKILLS = 10

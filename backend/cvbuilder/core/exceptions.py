from decimal import Decimal


class CVBuilderError(Exception):
    """Base exception for the CV Builder application."""

    pass


class InsufficientCreditsError(CVBuilderError):
    """Raised when a user's balance cannot cover an action."""

    def __init__(self, required: Decimal, balance: Decimal):
        self.required = required
        self.balance = balance
        super().__init__(f"Insufficient credits: required {required}, balance {balance}")


class ProfileIncompleteError(CVBuilderError):
    """Raised when generation is requested before the profile exists."""

    pass


class TemplateNotFoundError(CVBuilderError):
    """Raised when a template id does not resolve to a template."""

    pass


class DocumentNotFoundError(CVBuilderError):
    """Raised when a document is missing or not owned by the caller."""

    pass


class AIProviderNotConfiguredError(CVBuilderError):
    """Raised when no active AI provider (or fallback API key) exists."""

    pass


class AIProviderError(CVBuilderError):
    """Raised when the upstream LLM call fails after retries."""

    pass


class AIResponseParseError(CVBuilderError):
    """Raised when the LLM response is not the JSON we asked for."""

    pass


class PaymentNotConfiguredError(CVBuilderError):
    """Raised when Stripe keys are missing."""

    pass


class CreditPackNotFoundError(CVBuilderError):
    """Raised when a credit pack is missing or inactive."""

    pass


class PromoCodeError(CVBuilderError):
    """Raised when a promo code cannot be redeemed. Message is user-facing."""

    pass


class JobScrapeError(CVBuilderError):
    """Raised when a job posting URL cannot be fetched or parsed."""

    pass


class PDFRenderError(CVBuilderError):
    """Raised when the headless browser fails to produce a PDF."""

    pass


class MissingJobDescriptionError(CVBuilderError):
    """Raised when ATS scoring is requested for a document without a job description."""

    pass

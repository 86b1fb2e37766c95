"""Translate domain exceptions raised by services into HTTP errors."""

from contextlib import contextmanager

from fastapi import HTTPException

from cvbuilder.core.exceptions import (
    AIProviderError,
    AIProviderNotConfiguredError,
    AIResponseParseError,
    CreditPackNotFoundError,
    CVBuilderError,
    DocumentNotFoundError,
    InsufficientCreditsError,
    JobScrapeError,
    MissingJobDescriptionError,
    PaymentNotConfiguredError,
    PDFRenderError,
    ProfileIncompleteError,
    PromoCodeError,
    TemplateNotFoundError,
)

# (exception, status, public message); None keeps the exception text
STATUS_BY_ERROR: list[tuple[type[Exception], int, str | None]] = [
    (DocumentNotFoundError, 404, None),
    (CreditPackNotFoundError, 404, None),
    (TemplateNotFoundError, 400, "Template not found"),
    (ProfileIncompleteError, 400, None),
    (MissingJobDescriptionError, 400, None),
    (PromoCodeError, 400, None),
    (JobScrapeError, 400, None),
    (AIProviderNotConfiguredError, 503, "AI generation is not configured"),
    (PaymentNotConfiguredError, 503, None),
    (AIResponseParseError, 502, "AI returned an unusable response. Your credits were refunded."),
    (AIProviderError, 502, "AI provider request failed. Your credits were refunded."),
    (PDFRenderError, 500, "Failed to generate PDF"),
]


def insufficient_credits_detail(exc: InsufficientCreditsError) -> dict:
    return {"error": "Insufficient credits", "required": str(exc.required), "balance": str(exc.balance)}


def to_http_exception(exc: CVBuilderError) -> HTTPException:
    """HTTP equivalent of a domain exception. Unmapped errors become a bare 500."""
    if isinstance(exc, InsufficientCreditsError):
        return HTTPException(status_code=402, detail=insufficient_credits_detail(exc))
    for err, status, message in STATUS_BY_ERROR:
        if isinstance(exc, err):
            return HTTPException(status_code=status, detail=message or str(exc))
    return HTTPException(status_code=500, detail="Internal server error")


@contextmanager
def domain_errors():
    """Re-raise service exceptions as ``HTTPException`` with the matching status.

    Usage::

        with domain_errors():
            outcome = await service.generate_cv(...)
    """
    try:
        yield
    except CVBuilderError as e:
        raise to_http_exception(e) from e

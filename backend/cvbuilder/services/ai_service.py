"""AIService: provider resolution and structured generation calls.

Providers come from the ``ai_providers`` table (primary first, then any active
row). With no rows, a provider is synthesized from the API keys in settings so
a fresh deployment works before an admin configures anything.

All three SDK adapters return a ``Completion``. Transient upstream failures are
retried in ``_invoke_with_retry``; anything left over surfaces as
``AIProviderError``.

SDK clients are cached per provider key so their connection pools are reused.
``close_ai_clients`` releases them at shutdown.
"""

from dataclasses import dataclass, field

import anthropic
import httpx
import openai
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from sqlalchemy import select

from cvbuilder.core.config import get_settings
from cvbuilder.core.exceptions import AIProviderError, AIProviderNotConfiguredError, AIResponseParseError
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.ai_provider import AIProvider
from cvbuilder.domain.documents import AIProviderType, DocumentType
from cvbuilder.services.llm_helpers import _invoke_with_retry, _parse_json_response
from cvbuilder.services.prompts import (
    SYSTEM_PROMPT,
    build_ats_prompt,
    build_cover_letter_prompt,
    build_cv_prompt,
    build_job_analysis_prompt,
)

logger = structlog.get_logger(__name__)

DEFAULT_ATS_SCORE = 75
ATS_FALLBACK = {"score": 70, "feedback": ["Unable to analyze ATS score"]}

_PROVIDER_ERRORS: tuple[type[BaseException], ...] = (
    anthropic.APIError,
    openai.APIError,
    genai_errors.APIError,
    httpx.HTTPError,
    TimeoutError,
)


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    type: AIProviderType
    api_key: str
    model: str
    max_tokens: int


@dataclass(frozen=True)
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class GenerationParams:
    """Everything the CV / cover letter prompt needs."""

    profile: dict
    job_description: str
    doc_type: DocumentType
    job_title: str | None = None
    company_name: str | None = None
    tone: str = "professional"
    template_sections: list[dict] = field(default_factory=list)


@dataclass
class GenerationResult:
    content: dict
    ats_score: int
    keywords: list[str]
    suggestions: list[str]
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


def _provider_from_settings() -> ProviderConfig | None:
    settings = get_settings()
    if settings.anthropic_api_key:
        return ProviderConfig("Anthropic (env)", AIProviderType.ANTHROPIC, settings.anthropic_api_key, settings.anthropic_model, settings.ai_max_tokens)
    if settings.openai_api_key:
        return ProviderConfig("OpenAI (env)", AIProviderType.OPENAI, settings.openai_api_key, settings.openai_model, settings.ai_max_tokens)
    if settings.google_api_key:
        return ProviderConfig("Google (env)", AIProviderType.GOOGLE, settings.google_api_key, settings.google_model, settings.ai_max_tokens)
    return None


# One SDK client per (provider type, api key)
_clients: dict[tuple[AIProviderType, str], object] = {}

_CLIENT_FACTORIES = {
    AIProviderType.ANTHROPIC: lambda key: anthropic.AsyncAnthropic(api_key=key, max_retries=0),
    AIProviderType.OPENAI: lambda key: openai.AsyncOpenAI(api_key=key, max_retries=0),
    AIProviderType.GOOGLE: lambda key: genai.Client(api_key=key),
}


def _client_for(provider: ProviderConfig):
    key = (provider.type, provider.api_key)
    client = _clients.get(key)
    if client is None:
        client = _CLIENT_FACTORIES[provider.type](provider.api_key)
        _clients[key] = client
    return client


async def close_ai_clients() -> None:
    """Close cached SDK clients. Called from the app lifespan on shutdown."""
    clients = list(_clients.values())
    _clients.clear()
    for client in clients:
        if isinstance(client, (anthropic.AsyncAnthropic, openai.AsyncOpenAI)):
            await client.close()
    logger.info("ai_clients_closed", count=len(clients))


async def _complete_anthropic(provider: ProviderConfig, prompt: str, system: str) -> Completion:
    client = _client_for(provider)
    response = await client.messages.create(
        model=provider.model,
        max_tokens=provider.max_tokens,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = next((block.text for block in response.content if block.type == "text"), "")
    return Completion(text, response.usage.input_tokens, response.usage.output_tokens)


async def _complete_openai(provider: ProviderConfig, prompt: str, system: str) -> Completion:
    client = _client_for(provider)
    response = await client.chat.completions.create(
        model=provider.model,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=0.7,
        max_tokens=provider.max_tokens,
        response_format={"type": "json_object"},
    )
    usage = response.usage
    return Completion(
        response.choices[0].message.content or "",
        usage.prompt_tokens if usage else 0,
        usage.completion_tokens if usage else 0,
    )


async def _complete_google(provider: ProviderConfig, prompt: str, system: str) -> Completion:
    client = _client_for(provider)
    response = await client.aio.models.generate_content(
        model=provider.model,
        contents=prompt,
        config=genai_types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=provider.max_tokens,
            response_mime_type="application/json",
        ),
    )
    usage = response.usage_metadata
    return Completion(
        response.text or "",
        (usage.prompt_token_count or 0) if usage else 0,
        (usage.candidates_token_count or 0) if usage else 0,
    )


_ADAPTERS = {
    AIProviderType.ANTHROPIC: _complete_anthropic,
    AIProviderType.OPENAI: _complete_openai,
    AIProviderType.GOOGLE: _complete_google,
}


class AIService:
    """Thin orchestration over the configured LLM provider."""

    async def resolve_provider(self) -> ProviderConfig:
        """Primary active provider, else any active provider, else settings keys.

        Raises:
            AIProviderNotConfiguredError: nothing is configured anywhere
        """
        factory = get_session_factory()
        async with factory() as session:
            result = await session.execute(
                select(AIProvider)
                .where(AIProvider.is_active.is_(True))
                .order_by(AIProvider.is_primary.desc(), AIProvider.created_at.asc())
                .limit(1)
            )
            row = result.scalar_one_or_none()

        if row is not None:
            return ProviderConfig(
                name=row.name,
                type=AIProviderType(row.type),
                api_key=row.api_key,
                model=row.model,
                max_tokens=row.max_tokens,
            )

        fallback = _provider_from_settings()
        if fallback is None:
            raise AIProviderNotConfiguredError(
                "No AI provider configured. Please configure an AI provider in admin settings."
            )
        return fallback

    async def complete(self, prompt: str, system: str = SYSTEM_PROMPT) -> tuple[ProviderConfig, Completion]:
        """Send one prompt to the resolved provider.

        Raises:
            AIProviderNotConfiguredError: no provider available
            AIProviderError: upstream failure after retries
        """
        provider = await self.resolve_provider()
        adapter = _ADAPTERS[provider.type]
        timeout = get_settings().ai_request_timeout_seconds

        try:
            completion = await _invoke_with_retry(lambda: adapter(provider, prompt, system), timeout)
        except _PROVIDER_ERRORS as e:
            logger.error(
                "ai_provider_call_failed",
                provider=provider.type.value,
                model=provider.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AIProviderError(f"AI provider request failed: {type(e).__name__}") from e

        logger.info(
            "ai_provider_call_completed",
            provider=provider.type.value,
            model=provider.model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )
        return provider, completion

    async def generate_content(self, params: GenerationParams) -> GenerationResult:
        """Generate a CV or cover letter as structured sections.

        Raises:
            AIResponseParseError: response is not a JSON object with sections
        """
        if params.doc_type == DocumentType.CV:
            prompt = build_cv_prompt(
                params.profile,
                params.job_description,
                params.job_title,
                params.company_name,
                params.tone,
                params.template_sections,
            )
        else:
            prompt = build_cover_letter_prompt(
                params.profile,
                params.job_description,
                params.job_title,
                params.company_name,
                params.tone,
            )

        provider, completion = await self.complete(prompt)

        try:
            parsed = _parse_json_response(completion.text)
        except ValueError as e:
            logger.error("ai_response_unparseable", provider=provider.type.value, preview=completion.text[:200])
            raise AIResponseParseError("Failed to parse AI response. Please try again.") from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get("sections"), dict):
            logger.error("ai_response_missing_sections", provider=provider.type.value)
            raise AIResponseParseError("Failed to parse AI response. Please try again.")

        return GenerationResult(
            content=parsed["sections"],
            ats_score=_clamp_score(parsed.get("atsScore"), DEFAULT_ATS_SCORE),
            keywords=[str(k) for k in parsed.get("keywords") or []],
            suggestions=[str(s) for s in parsed.get("suggestions") or []],
            provider=provider.type.value,
            model=provider.model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )

    async def analyze_job_description(self, job_description: str) -> dict:
        """Extract title, company, requirements, responsibilities and keywords.

        An unparseable response degrades to empty fields.
        """
        _, completion = await self.complete(build_job_analysis_prompt(job_description))

        empty = {"title": "", "company": "", "requirements": [], "responsibilities": [], "keywords": []}
        try:
            parsed = _parse_json_response(completion.text)
        except ValueError:
            logger.warning("job_analysis_unparseable")
            return empty
        if not isinstance(parsed, dict):
            return empty

        return {
            "title": str(parsed.get("title") or ""),
            "company": str(parsed.get("company") or ""),
            "requirements": list(parsed.get("requirements") or []),
            "responsibilities": list(parsed.get("responsibilities") or []),
            "keywords": list(parsed.get("keywords") or []),
        }

    async def calculate_ats_score(self, content: dict, job_description: str) -> dict:
        """Score ``content`` against ``job_description``.

        An unparseable response degrades to a neutral score of 70; provider
        failures still raise.
        """
        _, completion = await self.complete(build_ats_prompt(content, job_description))

        try:
            parsed = _parse_json_response(completion.text)
        except ValueError:
            logger.warning("ats_score_unparseable")
            return dict(ATS_FALLBACK)
        if not isinstance(parsed, dict) or "score" not in parsed:
            return dict(ATS_FALLBACK)

        return {
            "score": _clamp_score(parsed.get("score"), ATS_FALLBACK["score"]),
            "feedback": [str(f) for f in parsed.get("feedback") or []],
        }


def _clamp_score(value, default: int) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    if score <= 0:
        return default
    return min(100, score)

"""Tests for AIService provider resolution and response handling.

SDK adapters are replaced through ``_ADAPTERS`` so no network call is made.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from cvbuilder.core.exceptions import AIProviderError, AIProviderNotConfiguredError, AIResponseParseError
from cvbuilder.db.models.ai_provider import AIProvider
from cvbuilder.domain.documents import AIProviderType, DocumentType
from cvbuilder.services import ai_service
from cvbuilder.services.ai_service import AIService, Completion, GenerationParams

pytestmark = pytest.mark.integration


def _adapter(text: str, input_tokens: int = 100, output_tokens: int = 50) -> AsyncMock:
    return AsyncMock(return_value=Completion(text, input_tokens, output_tokens))


def _settings(**keys) -> MagicMock:
    values = {
        "anthropic_api_key": "",
        "openai_api_key": "",
        "google_api_key": "",
        "anthropic_model": "claude-env",
        "openai_model": "gpt-env",
        "google_model": "gemini-env",
        "ai_max_tokens": 4096,
        "ai_request_timeout_seconds": 5.0,
        **keys,
    }
    return MagicMock(**values)


def _params(doc_type: DocumentType = DocumentType.CV) -> GenerationParams:
    return GenerationParams(
        profile={"name": "Ada", "experience": []},
        job_description="Senior Python engineer to own the billing platform.",
        doc_type=doc_type,
        job_title="Backend Engineer",
        company_name="Acme",
    )


async def _add_provider(factory, **overrides) -> None:
    values = {
        "name": "Claude",
        "type": "ANTHROPIC",
        "api_key": "sk-ant-db-key",
        "model": "claude-db",
        "is_active": True,
        "is_primary": False,
        **overrides,
    }
    async with factory() as session:
        session.add(AIProvider(**values))
        await session.commit()


class TestResolveProvider:
    async def test_nothing_configured(self, db):
        with patch("cvbuilder.services.ai_service.get_settings", return_value=_settings()):
            with pytest.raises(AIProviderNotConfiguredError):
                await AIService().resolve_provider()

    async def test_settings_fallback_prefers_anthropic(self, db):
        settings = _settings(anthropic_api_key="sk-ant-env", openai_api_key="sk-openai-env")
        with patch("cvbuilder.services.ai_service.get_settings", return_value=settings):
            provider = await AIService().resolve_provider()

        assert provider.type == AIProviderType.ANTHROPIC
        assert provider.model == "claude-env"

    async def test_settings_fallback_openai_only(self, db):
        with patch("cvbuilder.services.ai_service.get_settings", return_value=_settings(openai_api_key="sk-openai")):
            provider = await AIService().resolve_provider()

        assert provider.type == AIProviderType.OPENAI

    async def test_primary_row_wins(self, db):
        await _add_provider(db, name="Claude")
        await _add_provider(db, name="GPT", type="OPENAI", model="gpt-db", is_primary=True)

        provider = await AIService().resolve_provider()

        assert provider.name == "GPT"
        assert provider.type == AIProviderType.OPENAI

    async def test_inactive_rows_ignored(self, db):
        await _add_provider(db, is_active=False)

        with patch("cvbuilder.services.ai_service.get_settings", return_value=_settings(google_api_key="g-key")):
            provider = await AIService().resolve_provider()

        assert provider.type == AIProviderType.GOOGLE

    async def test_database_row_beats_settings(self, db):
        await _add_provider(db)

        with patch("cvbuilder.services.ai_service.get_settings", return_value=_settings(openai_api_key="sk-openai")):
            provider = await AIService().resolve_provider()

        assert provider.api_key == "sk-ant-db-key"


class TestGenerateContent:
    async def test_parses_sections_and_metadata(self, db):
        await _add_provider(db)
        payload = {
            "sections": {"summary": "Engineer"},
            "atsScore": 87,
            "keywords": ["python"],
            "suggestions": ["Add metrics"],
        }
        adapter = _adapter("```json\n" + json.dumps(payload) + "\n```", 1500, 900)

        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: adapter}):
            result = await AIService().generate_content(_params())

        assert result.content == {"summary": "Engineer"}
        assert result.ats_score == 87
        assert result.keywords == ["python"]
        assert (result.provider, result.model) == ("ANTHROPIC", "claude-db")
        assert (result.input_tokens, result.output_tokens) == (1500, 900)

        prompt = adapter.await_args.args[1]
        assert "Acme" in prompt
        assert "billing platform" in prompt

    async def test_cover_letter_uses_its_own_prompt(self, db):
        await _add_provider(db)
        adapter = _adapter(json.dumps({"sections": {"body": "Dear team"}}))

        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: adapter}):
            result = await AIService().generate_content(_params(DocumentType.COVER_LETTER))

        assert result.content == {"body": "Dear team"}
        assert result.ats_score == ai_service.DEFAULT_ATS_SCORE
        assert "cover letter" in adapter.await_args.args[1].lower()

    async def test_prose_response_is_a_parse_error(self, db):
        await _add_provider(db)
        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: _adapter("Here is your CV!")}):
            with pytest.raises(AIResponseParseError):
                await AIService().generate_content(_params())

    async def test_missing_sections_is_a_parse_error(self, db):
        await _add_provider(db)
        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: _adapter('{"summary": "x"}')}):
            with pytest.raises(AIResponseParseError):
                await AIService().generate_content(_params())

    async def test_upstream_failure_becomes_provider_error(self, db):
        await _add_provider(db)
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        adapter = AsyncMock(side_effect=httpx.ConnectError("refused", request=request))

        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: adapter}):
            with pytest.raises(AIProviderError):
                await AIService().generate_content(_params())


class TestCalculateAtsScore:
    async def _score(self, db, text: str) -> dict:
        await _add_provider(db)
        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: _adapter(text)}):
            return await AIService().calculate_ats_score({"summary": "Engineer"}, "Python role")

    async def test_score_and_feedback(self, db):
        result = await self._score(db, '{"score": 91, "feedback": ["Add Docker"]}')
        assert result == {"score": 91, "feedback": ["Add Docker"]}

    async def test_score_is_clamped(self, db):
        result = await self._score(db, '{"score": 140, "feedback": []}')
        assert result["score"] == 100

    async def test_unparseable_falls_back(self, db):
        result = await self._score(db, "I think it is about 80")
        assert result == ai_service.ATS_FALLBACK

    async def test_missing_score_falls_back(self, db):
        result = await self._score(db, '{"feedback": ["ok"]}')
        assert result["score"] == 70


class TestAnalyzeJobDescription:
    async def test_extracts_fields(self, db):
        await _add_provider(db)
        payload = {"title": "Data Engineer", "company": "Initech", "requirements": ["SQL"], "keywords": ["dbt"]}

        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: _adapter(json.dumps(payload))}):
            result = await AIService().analyze_job_description("We need a data engineer...")

        assert result["title"] == "Data Engineer"
        assert result["responsibilities"] == []
        assert result["keywords"] == ["dbt"]

    async def test_unparseable_degrades_to_empty(self, db):
        await _add_provider(db)
        with patch.dict(ai_service._ADAPTERS, {AIProviderType.ANTHROPIC: _adapter("no idea")}):
            result = await AIService().analyze_job_description("We need a data engineer...")

        assert result["title"] == ""
        assert result["requirements"] == []


class TestClampScore:
    @pytest.mark.parametrize(
        "value,expected",
        [(85, 85), ("72.6", 73), (0, 75), (-3, 75), (250, 100), (None, 75), ("high", 75)],
    )
    def test_clamp(self, value, expected):
        assert ai_service._clamp_score(value, 75) == expected


class TestClientCache:
    def _provider(self, key: str, type_: AIProviderType = AIProviderType.ANTHROPIC) -> ai_service.ProviderConfig:
        return ai_service.ProviderConfig("Claude", type_, key, "claude-db", 4096)

    def test_same_key_reuses_client(self):
        factory = MagicMock(side_effect=lambda key: MagicMock(name=key))
        with (
            patch.dict(ai_service._clients, clear=True),
            patch.dict(ai_service._CLIENT_FACTORIES, {AIProviderType.ANTHROPIC: factory}),
        ):
            first = ai_service._client_for(self._provider("sk-a"))
            second = ai_service._client_for(self._provider("sk-a"))
            rotated = ai_service._client_for(self._provider("sk-b"))

        assert first is second
        assert rotated is not first
        assert factory.call_count == 2

    async def test_close_releases_sdk_clients(self):
        with patch.dict(ai_service._clients, clear=True):
            anthropic_client = ai_service._client_for(self._provider("sk-ant-test"))
            openai_client = ai_service._client_for(self._provider("sk-oai-test", AIProviderType.OPENAI))

            await ai_service.close_ai_clients()

            assert ai_service._clients == {}
        assert anthropic_client.is_closed()
        assert openai_client.is_closed()

"""Tests for the LLM providers with the SDK clients mocked out."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions

from bulkmark.exceptions import ConfigError, LLMError, TruncatedResponseError
from bulkmark.llm import check_api_key, get_llm_provider
from bulkmark.llm.anthropic import AnthropicProvider
from bulkmark.llm.gemini import GeminiProvider
from bulkmark.llm.openai import OpenAIProvider
from bulkmark.llm.openrouter import OPENROUTER_BASE_URL, OpenRouterProvider

from conftest import FakeProvider


def _http_response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


def _anthropic_reply(text="{}", stop_reason="end_turn"):
    return SimpleNamespace(
        stop_reason=stop_reason,
        content=[SimpleNamespace(type="text", text=text)],
    )


def _openai_reply(text="{}", finish_reason="stop"):
    return SimpleNamespace(choices=[
        SimpleNamespace(finish_reason=finish_reason, message=SimpleNamespace(content=text)),
    ])


def _gemini_reply(text="{}", finish_reason="STOP"):
    return SimpleNamespace(candidates=[
        SimpleNamespace(
            finish_reason=SimpleNamespace(name=finish_reason),
            content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        ),
    ])


class TestAnthropicProvider:
    @pytest.fixture
    def client(self):
        with patch("bulkmark.llm.anthropic.anthropic.Anthropic") as cls:
            yield cls.return_value

    def test_generate(self, client):
        client.messages.create.return_value = _anthropic_reply("  hello  ")
        provider = AnthropicProvider(api_key="sk-ant-test")

        assert provider.generate("sys", "user", max_output_tokens=500) == "hello"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["max_tokens"] == 500
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    def test_budget_capped_at_model_limit(self, client):
        client.messages.create.return_value = _anthropic_reply()
        provider = AnthropicProvider(api_key="sk-ant-test", model="claude-3-haiku-20240307")

        provider.generate("sys", "user", max_output_tokens=16_384)
        assert client.messages.create.call_args.kwargs["max_tokens"] == 4_096

    def test_truncated(self, client):
        client.messages.create.return_value = _anthropic_reply(stop_reason="max_tokens")
        with pytest.raises(TruncatedResponseError, match="retry"):
            AnthropicProvider(api_key="sk-ant-test").generate("sys", "user")

    def test_empty_reply(self, client):
        client.messages.create.return_value = _anthropic_reply("   ")
        with pytest.raises(LLMError, match="No response from Anthropic"):
            AnthropicProvider(api_key="sk-ant-test").generate("sys", "user")

    def test_rate_limit_retried(self, client):
        response = _http_response(429, "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = [
            anthropic.RateLimitError("slow down", response=response, body=None),
            _anthropic_reply("ok"),
        ]
        with patch("bulkmark.llm.anthropic.time.sleep") as sleep:
            assert AnthropicProvider(api_key="sk-ant-test").generate("sys", "user") == "ok"
        assert client.messages.create.call_count == 2
        sleep.assert_called_once_with(2)

    def test_rate_limit_gives_up(self, client):
        response = _http_response(429, "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = anthropic.RateLimitError(
            "slow down", response=response, body=None,
        )
        with patch("bulkmark.llm.anthropic.time.sleep"):
            with pytest.raises(LLMError, match="Rate limited after 3 attempts"):
                AnthropicProvider(api_key="sk-ant-test").generate("sys", "user")
        assert client.messages.create.call_count == 3

    def test_api_error(self, client):
        response = _http_response(500, "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = anthropic.InternalServerError(
            "boom", response=response, body=None,
        )
        with pytest.raises(LLMError, match="Anthropic API error"):
            AnthropicProvider(api_key="sk-ant-test").generate("sys", "user")


class TestOpenAIProvider:
    @pytest.fixture
    def openai_cls(self):
        with patch("bulkmark.llm.openai.openai.OpenAI") as cls:
            yield cls

    def test_generate_legacy_model_uses_max_tokens(self, openai_cls):
        client = openai_cls.return_value
        client.chat.completions.create.return_value = _openai_reply(" done ")

        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini")
        assert provider.generate("sys", "user", max_output_tokens=100) == "done"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    def test_newer_model_uses_max_completion_tokens(self, openai_cls):
        client = openai_cls.return_value
        client.chat.completions.create.return_value = _openai_reply()

        OpenAIProvider(api_key="sk-test", model="gpt-5-mini").generate("sys", "user")
        assert "max_completion_tokens" in client.chat.completions.create.call_args.kwargs

    def test_truncated(self, openai_cls):
        openai_cls.return_value.chat.completions.create.return_value = _openai_reply(
            finish_reason="length",
        )
        with pytest.raises(TruncatedResponseError):
            OpenAIProvider(api_key="sk-test").generate("sys", "user")

    def test_no_choices(self, openai_cls):
        openai_cls.return_value.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with pytest.raises(LLMError, match="No response from OpenAI"):
            OpenAIProvider(api_key="sk-test").generate("sys", "user")

    def test_rate_limit_retried(self, openai_cls):
        client = openai_cls.return_value
        response = _http_response(429, "https://api.openai.com/v1/chat/completions")
        client.chat.completions.create.side_effect = [
            openai.RateLimitError("slow down", response=response, body=None),
            _openai_reply("ok"),
        ]
        with patch("bulkmark.llm.openai.time.sleep"):
            assert OpenAIProvider(api_key="sk-test").generate("sys", "user") == "ok"

    def test_openrouter_uses_router_base_url(self, openai_cls):
        client = openai_cls.return_value
        client.chat.completions.create.return_value = _openai_reply("ok")

        provider = OpenRouterProvider(api_key="sk-or-test")
        assert provider.generate("sys", "user") == "ok"
        assert openai_cls.call_args.kwargs["base_url"] == OPENROUTER_BASE_URL
        assert client.chat.completions.create.call_args.kwargs["model"] == "openai/gpt-4o-mini"
        assert "max_tokens" in client.chat.completions.create.call_args.kwargs

    def test_openrouter_errors_name_the_router(self, openai_cls):
        openai_cls.return_value.chat.completions.create.return_value = _openai_reply("")
        with pytest.raises(LLMError, match="No response from OpenRouter"):
            OpenRouterProvider(api_key="sk-or-test").generate("sys", "user")


class TestGeminiProvider:
    @pytest.fixture
    def genai(self):
        with patch("bulkmark.llm.gemini.genai") as module:
            yield module

    def test_generate(self, genai):
        model = genai.GenerativeModel.return_value
        model.generate_content.return_value = _gemini_reply(" planned ")

        provider = GeminiProvider(api_key="AIza-test")
        assert provider.generate("sys", "user", max_output_tokens=200) == "planned"
        genai.configure.assert_called_once_with(api_key="AIza-test")
        assert genai.GenerativeModel.call_args.kwargs["system_instruction"] == "sys"
        assert model.generate_content.call_args.kwargs["generation_config"] == {
            "max_output_tokens": 200,
        }

    def test_truncated(self, genai):
        genai.GenerativeModel.return_value.generate_content.return_value = _gemini_reply(
            finish_reason="MAX_TOKENS",
        )
        with pytest.raises(TruncatedResponseError):
            GeminiProvider(api_key="AIza-test").generate("sys", "user")

    def test_truncated_raw_enum_value(self, genai):
        reply = _gemini_reply()
        reply.candidates[0].finish_reason = 2
        genai.GenerativeModel.return_value.generate_content.return_value = reply
        with pytest.raises(TruncatedResponseError):
            GeminiProvider(api_key="AIza-test").generate("sys", "user")

    def test_no_candidates(self, genai):
        genai.GenerativeModel.return_value.generate_content.return_value = SimpleNamespace(
            candidates=[],
        )
        with pytest.raises(LLMError, match="No response from Gemini"):
            GeminiProvider(api_key="AIza-test").generate("sys", "user")

    def test_quota_retried_then_api_error(self, genai):
        genai.GenerativeModel.return_value.generate_content.side_effect = [
            google_exceptions.ResourceExhausted("quota"),
            google_exceptions.PermissionDenied("bad key"),
        ]
        with patch("bulkmark.llm.gemini.time.sleep"):
            with pytest.raises(LLMError, match="Gemini API error"):
                GeminiProvider(api_key="AIza-test").generate("sys", "user")


class TestFactory:
    def test_unknown_service(self):
        with pytest.raises(ConfigError):
            get_llm_provider("cohere", "key")

    def test_default_model(self):
        with patch("bulkmark.llm.anthropic.anthropic.Anthropic"):
            provider = get_llm_provider("anthropic", "sk-ant-test")
        assert isinstance(provider, AnthropicProvider)
        assert provider._model == "claude-haiku-4-5-20251001"

    def test_model_override(self):
        with patch("bulkmark.llm.openai.openai.OpenAI"):
            provider = get_llm_provider("openai", "sk-test", model="gpt-4.1")
        assert provider._model == "gpt-4.1"


class TestCheckApiKey:
    def test_truncated_reply_still_counts(self):
        provider = FakeProvider(error=TruncatedResponseError("cut"))
        with patch("bulkmark.llm.get_llm_provider", return_value=provider):
            assert check_api_key("google", "AIza-test") is True
        assert provider.calls[0][1] == "Hi"
        assert provider.calls[0][2] == 5

    def test_rejected_key(self):
        provider = FakeProvider(error=LLMError("401"))
        with patch("bulkmark.llm.get_llm_provider", return_value=provider):
            with pytest.raises(LLMError):
                check_api_key("google", "AIza-bad")

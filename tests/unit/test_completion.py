"""Unit tests for the completion clients (provider SDKs replaced by fakes)"""
import httpx
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from tracker_agent.agent import completion
from tracker_agent.agent.completion import (
    AnthropicCompletionClient,
    OpenAICompletionClient,
    create_completion_client,
    split_model_spec,
)
from tracker_agent.exceptions import CompletionError, ConfigurationError

MESSAGES = [
    {"role": "system", "content": "You extract structured data."},
    {"role": "user", "content": "had oatmeal"},
]


def _openai_sdk(create: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def _openai_reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestSplitModelSpec:
    @pytest.mark.parametrize("spec,expected", [
        ("openai:gpt-4o-mini", ("openai", "gpt-4o-mini")),
        ("anthropic:claude-3-5-haiku-latest", ("anthropic", "claude-3-5-haiku-latest")),
        ("gpt-4o-mini", ("openai", "gpt-4o-mini")),
        ("OpenAI: llama3.2", ("openai", "llama3.2")),
    ])
    def test_valid_specs(self, spec, expected):
        assert split_model_spec(spec) == expected

    @pytest.mark.parametrize("spec", ["ollama:llama3.2", "openai:", "anthropic:  "])
    def test_invalid_specs(self, spec):
        with pytest.raises(ConfigurationError):
            split_model_spec(spec)


class TestOpenAICompletionClient:
    """Test the OpenAI chat completions path"""

    @pytest.mark.asyncio
    async def test_returns_stripped_content(self):
        create = AsyncMock(return_value=_openai_reply('  {"meal": "Oatmeal"}\n'))
        client = OpenAICompletionClient(client=_openai_sdk(create))

        result = await client.complete("gpt-4o-mini", MESSAGES)

        assert result == '{"meal": "Oatmeal"}'
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == MESSAGES

    @pytest.mark.asyncio
    async def test_empty_content(self):
        create = AsyncMock(return_value=_openai_reply(None))
        client = OpenAICompletionClient(client=_openai_sdk(create))

        assert await client.complete("gpt-4o-mini", MESSAGES) == ""

    @pytest.mark.asyncio
    async def test_timeout_becomes_completion_error(self):
        create = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        client = OpenAICompletionClient(client=_openai_sdk(create), max_retries=0)

        with pytest.raises(CompletionError) as exc_info:
            await client.complete("gpt-4o-mini", MESSAGES)

        assert exc_info.value.operation == "complete"
        assert create.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, monkeypatch):
        monkeypatch.setattr("tracker_agent.resilience.retry.calculate_backoff", lambda attempt: 0)
        create = AsyncMock(side_effect=[httpx.ConnectError("refused"), _openai_reply("ok")])
        client = OpenAICompletionClient(client=_openai_sdk(create), max_retries=2)

        assert await client.complete("gpt-4o-mini", MESSAGES) == "ok"
        assert create.call_count == 2


class TestAnthropicCompletionClient:
    """Test the Anthropic messages path"""

    @pytest.mark.asyncio
    async def test_system_prompt_moves_to_parameter(self):
        create = AsyncMock(return_value=SimpleNamespace(content=[
            SimpleNamespace(type="text", text='{"count": 10} '),
            SimpleNamespace(type="tool_use"),
        ]))
        client = AnthropicCompletionClient(client=SimpleNamespace(messages=SimpleNamespace(create=create)))

        result = await client.complete("claude-3-5-haiku-latest", MESSAGES)

        assert result == '{"count": 10}'
        kwargs = create.call_args.kwargs
        assert kwargs["system"] == "You extract structured data."
        assert kwargs["messages"] == [{"role": "user", "content": "had oatmeal"}]

    @pytest.mark.asyncio
    async def test_no_system_parameter_without_system_messages(self):
        create = AsyncMock(return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text="hi")]))
        client = AnthropicCompletionClient(client=SimpleNamespace(messages=SimpleNamespace(create=create)))

        await client.complete("claude-3-5-haiku-latest", [{"role": "user", "content": "hello"}])

        assert "system" not in create.call_args.kwargs


class TestCreateCompletionClient:
    def test_openai_client(self, monkeypatch):
        monkeypatch.setattr(completion, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(completion, "OPENAI_BASE_URL", "")

        client, model = create_completion_client("openai:gpt-4o-mini")

        assert isinstance(client, OpenAICompletionClient)
        assert client.provider == "openai"
        assert model == "gpt-4o-mini"

    def test_anthropic_client(self, monkeypatch):
        monkeypatch.setattr(completion, "ANTHROPIC_API_KEY", "sk-ant-test")

        client, model = create_completion_client("anthropic:claude-3-5-haiku-latest")

        assert isinstance(client, AnthropicCompletionClient)
        assert model == "claude-3-5-haiku-latest"

    @pytest.mark.parametrize("client_class", [OpenAICompletionClient, AnthropicCompletionClient])
    def test_sdk_client_gets_plain_timeout(self, client_class):
        client = client_class(api_key="sk-test", timeout=12.5)

        assert client.client.timeout == 12.5
        assert client.client.max_retries == 0

"""
Completion collaborator

Every model-backed step (intent classification, record extraction,
tracker-definition synthesis, correction parsing) talks to a language model
through CompletionClient.complete(model, messages) -> str. Two providers are
supported:

- openai: the OpenAI API, or any OpenAI-compatible server (e.g. a local
  Ollama) when OPENAI_BASE_URL is set
- anthropic: the Anthropic Messages API

Provider failures are retried when transient and surface as CompletionError.
"""
import logging
import time
from typing import Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from tracker_agent.config import (
    ANTHROPIC_API_KEY,
    COMPLETION_MAX_RETRIES,
    COMPLETION_MODEL,
    COMPLETION_TIMEOUT,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    SUPPORTED_PROVIDERS,
)
from tracker_agent.exceptions import ConfigurationError, wrap_external_exception
from tracker_agent.resilience.metrics import record_completion_call, record_completion_failure
from tracker_agent.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)

Message = Dict[str, str]

# Extraction replies are a single small JSON object
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.2


def split_model_spec(model_spec: str) -> Tuple[str, str]:
    """
    Split "<provider>:<model>" into its parts

    A spec without a provider prefix is treated as an openai model name.

    Raises:
        ConfigurationError: If the provider is not supported
    """
    provider, sep, model = model_spec.partition(":")
    if not sep:
        provider, model = "openai", model_spec
    provider = provider.strip().lower()
    if provider not in SUPPORTED_PROVIDERS or not model.strip():
        raise ConfigurationError(
            message=f"Unsupported completion model '{model_spec}'",
            config_key="COMPLETION_MODEL"
        )
    return provider, model.strip()


class CompletionClient:
    """Base class: send chat messages, get the assistant text back"""

    provider = "unknown"

    def __init__(self, max_retries: int = COMPLETION_MAX_RETRIES):
        self.max_retries = max_retries

    async def complete(self, model: str, messages: List[Message]) -> str:
        """
        Run one chat completion.

        Args:
            model: Provider model name (without the provider prefix)
            messages: Ordered list of {"role", "content"} dicts

        Returns:
            Assistant message text (may be empty)

        Raises:
            CompletionError: On provider failure after retries
        """
        start = time.monotonic()
        try:
            content = await retry_with_backoff(
                self._send,
                model,
                messages,
                max_retries=self.max_retries,
                label=self.provider
            )
        except Exception as e:
            record_completion_call(self.provider, False, time.monotonic() - start)
            record_completion_failure(self.provider, type(e).__name__)
            raise wrap_external_exception(
                e,
                operation="complete",
                provider=self.provider,
                context={"model": model}
            ) from e

        record_completion_call(self.provider, True, time.monotonic() - start)
        logger.debug(f"[COMPLETION] {self.provider}/{model} returned {len(content)} chars")
        return content

    async def _send(self, model: str, messages: List[Message]) -> str:
        raise NotImplementedError


class OpenAICompletionClient(CompletionClient):
    """OpenAI chat completions (also OpenAI-compatible local servers)"""

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = COMPLETION_TIMEOUT,
        client: Optional[AsyncOpenAI] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        base_url = base_url or OPENAI_BASE_URL or None
        # Local servers accept any key but the SDK refuses an empty one
        api_key = api_key or OPENAI_API_KEY or ("not-needed" if base_url else None)
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0
        )

    async def _send(self, model: str, messages: List[Message]) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=DEFAULT_TEMPERATURE,
            max_tokens=DEFAULT_MAX_TOKENS
        )
        return (response.choices[0].message.content or "").strip()


class AnthropicCompletionClient(CompletionClient):
    """Anthropic messages API; system messages go to the system parameter"""

    provider = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = COMPLETION_TIMEOUT,
        client: Optional[AsyncAnthropic] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.client = client or AsyncAnthropic(
            api_key=api_key or ANTHROPIC_API_KEY,
            timeout=timeout,
            max_retries=0
        )

    async def _send(self, model: str, messages: List[Message]) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]

        params = {
            "model": model,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
            "messages": chat,
        }
        if system:
            params["system"] = system

        response = await self.client.messages.create(**params)
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()


def create_completion_client(model_spec: str = COMPLETION_MODEL) -> Tuple[CompletionClient, str]:
    """
    Build the client for a "<provider>:<model>" spec

    Returns:
        Tuple of (client, model name to pass to complete())
    """
    provider, model = split_model_spec(model_spec)
    if provider == "anthropic":
        client: CompletionClient = AnthropicCompletionClient()
    else:
        client = OpenAICompletionClient()
    logger.info(f"[COMPLETION] Using {provider} model {model}")
    return client, model

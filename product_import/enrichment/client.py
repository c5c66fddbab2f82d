"""
Chat-completion boundary.

The pipeline only needs `request(model, prompt) -> text`. Concrete clients
wrap the OpenAI SDK (any OpenAI-compatible endpoint, DeepInfra by default)
and the Anthropic SDK. SDK-internal retries are disabled: retry and fallback
policy lives in the TranslationClient.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Optional

import anthropic
import openai

from ..errors import ModelBusyError, PipelineError, TranslationError, TranslationTimeout

BUSY_MARKERS = ['429', 'model busy', 'rate limit', 'too many requests', 'overloaded']
TIMEOUT_MARKERS = ['timeout', 'timed out', 'etimedout', 'econnreset', 'connection reset', 'socket hang up']


class ChatClient(ABC):
    """Abstract chat-completion provider."""

    @abstractmethod
    async def request(self, model: str, prompt: str) -> str:
        """Send one user prompt to model and return the raw text reply."""
        pass


class OpenAIChatClient(ChatClient):
    """OpenAI-compatible chat completions (DeepInfra, OpenAI, local servers)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 180.0,
        temperature: float = 0.2,
        max_tokens: int = 1000,
    ):
        self.api_key = api_key or os.getenv('DEEPINFRA_API_KEY') or os.getenv('OPENAI_API_KEY')
        if not self.api_key:
            raise ValueError("No API key found (DEEPINFRA_API_KEY / OPENAI_API_KEY)")
        self.client = openai.AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=timeout_s,
            max_retries=0,
        )
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def request(self, model: str, prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return (response.choices[0].message.content or '').strip()


class AnthropicChatClient(ChatClient):
    """Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_s: float = 180.0,
        temperature: float = 0.2,
        max_tokens: int = 1000,
    ):
        self.api_key = api_key or os.getenv('ANTHROPIC_API_KEY') or os.getenv('CLAUDE_API_KEY')
        if not self.api_key:
            raise ValueError("Claude API key not found")
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=timeout_s, max_retries=0)
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def request(self, model: str, prompt: str) -> str:
        response = await self.client.messages.create(
            model=model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        parts = [block.text for block in response.content if getattr(block, 'type', '') == 'text']
        return ''.join(parts).strip()


def create_chat_client(provider: str = 'openai', base_url: Optional[str] = None, timeout_s: float = 180.0) -> ChatClient:
    """Factory for the configured provider ('openai' or 'anthropic'/'claude')."""
    provider = (provider or 'openai').lower()
    if provider in ('anthropic', 'claude'):
        return AnthropicChatClient(timeout_s=timeout_s)
    if provider in ('openai', 'deepinfra'):
        return OpenAIChatClient(base_url=base_url, timeout_s=timeout_s)
    raise ValueError(f"Unknown LLM provider: {provider}")


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, 'status_code', None)
    if status is None:
        status = getattr(exc, 'status', None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def classify_llm_error(exc: BaseException) -> PipelineError:
    """
    Map an SDK/transport exception onto the translation error taxonomy.

    Returns TranslationTimeout (never retried), ModelBusyError (retry once on
    the fallback model) or a plain TranslationError.
    """
    if isinstance(exc, PipelineError):
        return exc

    message = f"{type(exc).__name__}: {exc}"
    lowered = message.lower()
    status = _status_code(exc)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, openai.APITimeoutError, anthropic.APITimeoutError)):
        return TranslationTimeout(message)
    if status == 408 or any(marker in lowered for marker in TIMEOUT_MARKERS):
        return TranslationTimeout(message)

    if isinstance(exc, (openai.RateLimitError, anthropic.RateLimitError)):
        return ModelBusyError(message)
    if status in (429, 529) or any(marker in lowered for marker in BUSY_MARKERS):
        return ModelBusyError(message)

    return TranslationError(message)

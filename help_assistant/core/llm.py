"""Generative-model providers behind a single completion interface."""

from typing import Protocol

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from help_assistant.core.config import Settings
from help_assistant.core.logging import get_logger
from help_assistant.core.schemas_assistant import ChatCompletion, PromptMessage, TokenUsage

logger = get_logger(__name__)


class ChatProvider(Protocol):
    """Opaque, replaceable text-generation service."""

    name: str
    model: str

    async def complete(
        self,
        messages: list[PromptMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> ChatCompletion: ...


class OpenAIChatProvider:
    """Chat completions through the OpenAI API."""

    name = "openai"

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.model = settings.LLM_MODEL
        self._client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    async def complete(
        self,
        messages: list[PromptMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> ChatCompletion:
        response = await self._client.chat.completions.create(
            model=model or self.model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )

        text = response.choices[0].message.content or ""
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return ChatCompletion(text=text, usage=usage)


class AnthropicChatProvider:
    """Claude messages API; system messages are lifted into ``system``."""

    name = "anthropic"

    def __init__(self, settings: Settings, client: AsyncAnthropic | None = None):
        if client is None and not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required when LLM_PROVIDER=anthropic")
        self.model = settings.ANTHROPIC_MODEL
        self._client = client or AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    async def complete(
        self,
        messages: list[PromptMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> ChatCompletion:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        conversation = [
            {"role": m.role, "content": m.content} for m in messages if m.role != "system"
        ]

        response = await self._client.messages.create(
            model=model or self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=conversation,
        )

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return ChatCompletion(text=text, usage=usage)


def build_chat_provider(settings: Settings) -> ChatProvider:
    """
    Create the configured chat provider.

    Raises:
        ValueError: For an unknown LLM_PROVIDER
    """
    if settings.LLM_PROVIDER == "openai":
        return OpenAIChatProvider(settings)
    if settings.LLM_PROVIDER == "anthropic":
        return AnthropicChatProvider(settings)
    raise ValueError(
        f'Unknown LLM_PROVIDER: "{settings.LLM_PROVIDER}". Supported values: openai, anthropic'
    )

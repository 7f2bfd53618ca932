"""Provider selection."""

from enum import Enum

import httpx

from termai.providers.base import LLMProvider, TokenCallback
from termai.providers.claude import ANTHROPIC_BASE_URL, ClaudeProvider
from termai.providers.openai import OPENAI_BASE_URL, OpenAIProvider

OLLAMA_BASE_URL = "http://localhost:11434/v1"


class ProviderType(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"
    OLLAMA = "ollama"


PROVIDER_NAMES = [p.value for p in ProviderType]

# Environment variables consulted for an API key, after TERMAI_API_KEY
API_KEY_ENV = {
    ProviderType.OPENAI: "OPENAI_API_KEY",
    ProviderType.CLAUDE: "ANTHROPIC_API_KEY",
}


def create_provider(
    provider: ProviderType | str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    """Build the adapter for ``provider``. Raises ValueError for an unknown name."""
    kind = ProviderType(provider)
    if kind is ProviderType.CLAUDE:
        return ClaudeProvider(
            model,
            api_key=api_key,
            base_url=base_url or ANTHROPIC_BASE_URL,
            temperature=temperature,
            transport=transport,
        )
    default_url = OLLAMA_BASE_URL if kind is ProviderType.OLLAMA else OPENAI_BASE_URL
    return OpenAIProvider(
        model,
        api_key=api_key,
        base_url=base_url or default_url,
        temperature=temperature,
        transport=transport,
    )


__all__ = [
    "API_KEY_ENV",
    "LLMProvider",
    "PROVIDER_NAMES",
    "ProviderType",
    "TokenCallback",
    "create_provider",
]

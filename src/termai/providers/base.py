"""Provider contract and shared HTTP plumbing."""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import contextmanager
from typing import Any

import httpx

from termai.errors import ProviderError
from termai.messages import CompletionOptions, CompletionResult, Message

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], None]

DEFAULT_TIMEOUT = 120.0


class LLMProvider(ABC):
    """One remote model API behind a uniform streaming-completion call."""

    @abstractmethod
    async def generate_streaming_completion(
        self,
        messages: list[Message],
        on_token: TokenCallback,
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """Stream a completion, calling ``on_token`` with each text fragment in order.

        Returns once the stream is finished; no fragment is delivered after that.
        Transport and provider failures raise ProviderError. Never retries.
        """

    @abstractmethod
    def get_model(self) -> str:
        ...

    async def close(self) -> None:
        pass


class HTTPProvider(LLMProvider):
    """Base for providers that talk JSON over an httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        model: str,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers or {},
            transport=transport,
        )

    def get_model(self) -> str:
        return self.model

    async def close(self) -> None:
        await self._client.aclose()

    async def stream_events(self, path: str, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """POST ``payload`` with streaming on and yield decoded SSE ``data:`` objects."""
        with translate_errors(self.base_url):
            async with self._client.stream("POST", path, json=payload) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        return

                    try:
                        obj = json.loads(data)
                    except json.JSONDecodeError:
                        # Skip malformed chunks from the model
                        continue
                    if not isinstance(obj, dict):
                        logger.debug("Skipping non-object stream chunk: %s", data[:200])
                        continue
                    yield obj


@contextmanager
def translate_errors(base_url: str) -> Iterator[None]:
    """Re-raise httpx failures as ProviderError with a hint for the user."""
    try:
        yield
    except httpx.ConnectError as e:
        raise ProviderError(
            f"Could not connect to {base_url}. Check your network and --base-url."
        ) from e
    except httpx.TimeoutException as e:
        raise ProviderError(
            "Request timed out. The provider may be overloaded; try again in a moment."
        ) from e
    except httpx.HTTPStatusError as e:
        code = e.response.status_code
        body = e.response.text[:200]
        if code in (401, 403):
            msg = (
                f"Authentication failed (HTTP {code}). "
                "Check your --api-key or the provider's API key environment variable."
            )
        elif code == 404:
            msg = f"Endpoint or model not found (HTTP 404) at {base_url}: {body}"
        elif code == 429:
            msg = f"Rate limited by the provider (HTTP 429): {body}"
        elif code >= 500:
            msg = f"Provider error (HTTP {code}): {body}"
        else:
            msg = f"Provider returned HTTP {code}: {body}"
        raise ProviderError(msg, status_code=code) from e
    except (httpx.RemoteProtocolError, httpx.ReadError) as e:
        raise ProviderError(
            "Connection was interrupted before the response finished."
        ) from e
    except httpx.HTTPError as e:
        raise ProviderError(f"Request failed: {e}") from e


def parse_arguments(raw: str) -> dict[str, Any]:
    """Decode streamed function-call arguments; malformed JSON becomes {}."""
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Could not decode function arguments: %r", raw)
        return {}
    if not isinstance(args, dict):
        logger.debug("Function arguments are not an object: %r", raw)
        return {}
    return args

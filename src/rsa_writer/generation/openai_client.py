"""OpenAI chat-completions client implementing :class:`GenerationProvider`.

Responsibilities:
- ``generate()``: POST one user message and return the first choice's text.

Error handling maps HTTP status codes to typed exceptions:
- HTTP 429 -> :class:`~rsa_writer.core.exceptions.ProviderRateLimitError`
- HTTP 401/403 -> :class:`~rsa_writer.core.exceptions.ProviderAuthError`
- Other non-2xx, network errors, and responses without text ->
  :class:`~rsa_writer.core.exceptions.ProviderError`
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from rsa_writer.config.settings import Settings, get_settings
from rsa_writer.core.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from rsa_writer.generation.config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    OPENAI_PROVIDER,
)

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Generates text through the OpenAI chat completions endpoint.

    Args:
        api_key: OpenAI API key (``Bearer`` token).
        api_url: Chat completions endpoint URL.
        model: Model identifier.
        max_tokens: Completion token cap per request.
        temperature: Sampling temperature.
        timeout: Per-request timeout in seconds.
        client: Optional shared :class:`httpx.AsyncClient`.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> OpenAIClient:
        settings = settings or get_settings()
        return cls(
            settings.openai_api_key,
            api_url=settings.openai_api_url,
            model=settings.openai_model,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            timeout=settings.openai_timeout_seconds,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> OpenAIClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def generate(self, prompt: str) -> str:
        """Send *prompt* as a single user message and return the reply text.

        Raises:
            ProviderRateLimitError: On HTTP 429.
            ProviderAuthError: On HTTP 401 or 403.
            ProviderError: On other failures or an empty reply.
        """
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        body = await self._post_completion(payload)

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("openai: unexpected response shape", provider=OPENAI_PROVIDER) from exc
        if not content:
            logger.error("openai: response had no content", extra={"model": self._model})
            raise ProviderError("openai: empty response", provider=OPENAI_PROVIDER)
        return str(content)

    async def _post_completion(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers: dict[str, str] = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(self._api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code == 429:
                retry_after = float(exc.response.headers.get("Retry-After", 60))
                raise ProviderRateLimitError(
                    "openai: HTTP 429 (rate limited)",
                    retry_after=retry_after,
                    provider=OPENAI_PROVIDER,
                ) from exc
            if code in (401, 403):
                raise ProviderAuthError(
                    f"openai: HTTP {code} (invalid API key)",
                    provider=OPENAI_PROVIDER,
                ) from exc
            raise ProviderError(
                f"openai: HTTP {code} ({exc.response.text[:200]})",
                provider=OPENAI_PROVIDER,
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"openai: network error ({exc})", provider=OPENAI_PROVIDER) from exc

        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as exc:
            raise ProviderError("openai: JSON parse error", provider=OPENAI_PROVIDER) from exc

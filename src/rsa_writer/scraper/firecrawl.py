"""Firecrawl HTTP client implementing :class:`ContentProvider`.

Responsibilities:
- ``validate()``: structural URL check plus the optional domain allow-list.
- ``fetch_one()``: POST one URL to the scrape endpoint and return a
  :class:`~rsa_writer.core.schemas.ScrapeResult`.  Never raises for a
  provider-side failure.  The result carries a stable reason from
  :mod:`rsa_writer.scraper.config`; the provider's own error text is only logged.

Error mapping inside ``_post_scrape()`` follows the other provider clients:
- HTTP 429 -> :class:`~rsa_writer.core.exceptions.ProviderRateLimitError`
- HTTP 401/403 -> :class:`~rsa_writer.core.exceptions.ProviderAuthError`
- Other non-2xx and network errors -> :class:`~rsa_writer.core.exceptions.ProviderError`
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from rsa_writer.config.settings import Settings, get_settings
from rsa_writer.core.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from rsa_writer.core.schemas import ScrapeResult
from rsa_writer.core.url_validation import is_allowed_domain, validate_url
from rsa_writer.scraper.config import (
    FIRECRAWL_FORMATS,
    FIRECRAWL_PROVIDER,
    MAX_ERROR_CHARS,
    REASON_INVALID_URL,
    REASON_PROVIDER,
)
from rsa_writer.scraper.provider import failure_reason

logger = logging.getLogger(__name__)


class FirecrawlClient:
    """Scrapes single pages through the Firecrawl API.

    Args:
        api_key: Firecrawl API key (``Bearer`` token).
        api_url: Scrape endpoint URL.
        timeout: Per-request timeout in seconds.
        allowed_domains: Optional domain allow-list; empty allows all.
        client: Optional shared :class:`httpx.AsyncClient`.  When omitted the
            instance owns its client and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.firecrawl.dev/v1/scrape",
        timeout: float = 60.0,
        allowed_domains: Sequence[str] | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._allowed_domains = list(allowed_domains or [])
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> FirecrawlClient:
        settings = settings or get_settings()
        return cls(
            settings.firecrawl_api_key,
            api_url=settings.firecrawl_api_url,
            timeout=settings.firecrawl_timeout_seconds,
            allowed_domains=settings.allowed_domains,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> FirecrawlClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # ContentProvider
    # ------------------------------------------------------------------

    def validate(self, url: str) -> bool:
        return validate_url(url).is_valid and is_allowed_domain(url, self._allowed_domains)

    async def fetch_one(self, url: str) -> ScrapeResult:
        if not self.validate(url):
            return ScrapeResult.failed(url, REASON_INVALID_URL)

        logger.info("scraper: fetching %s", url)
        try:
            body = await self._post_scrape(url)
        except ProviderError as exc:
            logger.warning("scraper: fetch failed for %s: %s", url, exc)
            return ScrapeResult.failed(url, failure_reason(exc))

        if not body.get("success"):
            error = str(body.get("error") or "no error text")[:MAX_ERROR_CHARS]
            logger.warning("scraper: provider reported failure for %s: %s", url, error)
            return ScrapeResult.failed(url, REASON_PROVIDER)

        data = body.get("data") or {}
        return ScrapeResult.ok(
            url,
            content=data.get("markdown"),
            metadata=data.get("metadata") or {},
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _post_scrape(self, url: str) -> dict[str, Any]:
        """POST *url* to the scrape endpoint and return the parsed JSON body.

        Raises:
            ProviderRateLimitError: On HTTP 429.
            ProviderAuthError: On HTTP 401 or 403.
            ProviderError: On other non-2xx responses, network errors or an
                undecodable body.
        """
        payload: dict[str, Any] = {"url": url, "formats": list(FIRECRAWL_FORMATS)}
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
                raise ProviderRateLimitError(
                    "firecrawl: HTTP 429 (rate limited)",
                    retry_after=float(exc.response.headers.get("Retry-After", 60)),
                    provider=FIRECRAWL_PROVIDER,
                ) from exc
            if code in (401, 403):
                raise ProviderAuthError(
                    f"firecrawl: HTTP {code} (invalid API key)",
                    provider=FIRECRAWL_PROVIDER,
                ) from exc
            raise ProviderError(f"firecrawl: HTTP {code}", provider=FIRECRAWL_PROVIDER) from exc
        except httpx.TimeoutException as exc:
            raise ProviderError("firecrawl: timeout", provider=FIRECRAWL_PROVIDER) from exc
        except httpx.RequestError as exc:
            raise ProviderError(
                f"firecrawl: network error ({type(exc).__name__})",
                provider=FIRECRAWL_PROVIDER,
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("firecrawl: JSON parse error", provider=FIRECRAWL_PROVIDER) from exc
        if not isinstance(body, dict):
            raise ProviderError("firecrawl: unexpected response shape", provider=FIRECRAWL_PROVIDER)
        return body

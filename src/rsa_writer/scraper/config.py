"""Constants and tuning parameters for content retrieval."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Batch fetch
# ---------------------------------------------------------------------------

#: Fetches issued together per chunk when no concurrency is configured.
DEFAULT_CONCURRENCY: int = 5

# ---------------------------------------------------------------------------
# Firecrawl
# ---------------------------------------------------------------------------

#: Provider identifier used in exceptions and log records.
FIRECRAWL_PROVIDER: str = "firecrawl"

#: Output formats requested from the scrape endpoint.
FIRECRAWL_FORMATS: tuple[str, ...] = ("markdown",)

#: Provider error text longer than this is cut before it is logged.
MAX_ERROR_CHARS: int = 200

# ---------------------------------------------------------------------------
# Per-URL failure reasons
# ---------------------------------------------------------------------------

#: Reasons stored on a failed scrape result.  Provider error text is logged,
#: never stored.
REASON_INVALID_URL: str = "Invalid URL"
REASON_RATE_LIMITED: str = "Content provider rate limited the request"
REASON_AUTH: str = "Content provider rejected the credentials"
REASON_PROVIDER: str = "Failed to scrape URL"
REASON_UNEXPECTED: str = "Unexpected error while fetching"

"""Content retrieval for submitted URLs.

Sub-modules:
- ``config``     - constants and tuning parameters
- ``provider``   - :class:`ContentProvider` protocol (``validate`` / ``fetch_one``) and
  ``failure_reason`` for provider exceptions
- ``firecrawl``  - httpx-based Firecrawl client implementing the protocol
- ``batch``      - :class:`BatchScraper`, the chunked bounded-concurrency fetch loop
"""

from __future__ import annotations

from rsa_writer.scraper.batch import BatchProgress, BatchScraper, ProgressCallback
from rsa_writer.scraper.firecrawl import FirecrawlClient
from rsa_writer.scraper.provider import ContentProvider

__all__ = [
    "BatchProgress",
    "BatchScraper",
    "ContentProvider",
    "FirecrawlClient",
    "ProgressCallback",
]

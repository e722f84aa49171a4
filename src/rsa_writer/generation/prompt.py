"""Prompt construction for ad-copy generation."""

from __future__ import annotations

import json
import re

from rsa_writer.core.schemas import MAX_DESCRIPTIONS, MAX_HEADLINES, ScrapeResult
from rsa_writer.generation.config import AD_COPY_PROMPT_TEMPLATE

_PLACEHOLDER_RE = re.compile(r"\{([A-Z_]+)\}")


def build_prompt(
    url: str,
    result: ScrapeResult,
    *,
    max_headlines: int = MAX_HEADLINES,
    max_descriptions: int = MAX_DESCRIPTIONS,
    headline_chars: int = 30,
    description_chars: int = 90,
) -> str:
    """Fill the ad-copy template with one URL's scraped content and metadata.

    Substitution is a single pass over the template, so page text that
    happens to contain a placeholder name is inserted verbatim.

    Args:
        url: The page URL, quoted in the prompt.
        result: A successful scrape result for *url*.
        max_headlines: Headline count to request.
        max_descriptions: Description count to request.
        headline_chars: Per-headline character limit to request.
        description_chars: Per-description character limit to request.

    Returns:
        The complete user message.
    """
    values = {
        "URL": url,
        "CONTENT": result.content or "",
        "METADATA": json.dumps(result.metadata, indent=2, ensure_ascii=False, default=str),
        "MAX_HEADLINES": str(max_headlines),
        "MAX_DESCRIPTIONS": str(max_descriptions),
        "HEADLINE_CHARS": str(headline_chars),
        "DESCRIPTION_CHARS": str(description_chars),
    }
    return _PLACEHOLDER_RE.sub(
        lambda match: values.get(match.group(1), match.group(0)),
        AD_COPY_PROMPT_TEMPLATE,
    )

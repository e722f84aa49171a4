"""Configuration for ad-copy generation.

Defines the provider identifier, default request parameters and the prompt
template used by :func:`rsa_writer.generation.prompt.build_prompt`.

Key design decisions:
- One user message per URL; no system prompt.  The template carries all of
  the instructions.
- Character limits are *requested* in the prompt and never enforced on the
  response.  Counts are enforced by truncation in the parser.
- Placeholders use ``{NAME}`` and are filled in a single regex pass, so the JSON
  example in the template needs no brace escaping.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

OPENAI_PROVIDER: str = "openai"
"""Provider identifier used in exceptions and log records."""

DEFAULT_MODEL: str = "gpt-4o-mini"
DEFAULT_MAX_TOKENS: int = 500
DEFAULT_TEMPERATURE: float = 0.7

# ---------------------------------------------------------------------------
# Per-URL failure reasons
# ---------------------------------------------------------------------------

#: Reasons stored on the job when a URL's generation fails.  Provider error
#: text is logged, never stored.
REASON_RATE_LIMITED: str = "Generation provider rate limited the request"
REASON_AUTH: str = "Generation provider rejected the credentials"
REASON_PROVIDER: str = "Generation request failed"
REASON_PARSE: str = "Could not parse generated copy"
REASON_SAVE: str = "Failed to save generated copy"

# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

AD_COPY_PROMPT_TEMPLATE: str = """\
Given the following scraped data from the URL {URL} for an eCommerce product or collection:

Markdown Content:
{CONTENT}

Metadata:
{METADATA}

Generate {MAX_HEADLINES} Google Ads headlines (max {HEADLINE_CHARS} characters each) and \
{MAX_DESCRIPTIONS} descriptions (max {DESCRIPTION_CHARS} characters each) tailored to this \
content. Follow these instructions to create compelling, clear ad copy for an eCommerce audience:

### Context
- The ad targets searchers looking for products/collections like those on the page.
- Searchers may use queries reflecting:
  1. Direct questions (e.g., "Where to buy [product]?")
  2. Desired answers (e.g., "[Product] for sale")
  3. Problems (e.g., "Need [product] fast")
  4. Symptoms (e.g., "No [product] nearby")
  5. Causes (e.g., "Pet stores near me")
- Focus on info-gathering searchers in the research or purchase phase.

### Ad Copy Goals
- Attract the "perfect searcher" who wants this product/collection.
- Repel irrelevant searchers with specific, qualifying language.
- Stand out with clear benefits, not features, using simple words.
- Align with searcher intent from the data (title, description, markdown).

### Headline Instructions ({MAX_HEADLINES} total)
- Headlines 1-5: unique value proposition, offer and brand name, e.g. "[Brand Name] [Product Name]". \
Use keywords from the metadata if relevant.
- Headlines 6-10: key benefits and trust factors (e.g., "Fast Shipping, 5-Star Rated"). \
Include specific numbers and shipping times where the data has them.
- Headlines 11-15: strong, varied calls to action that fit the product. \
Do not just repeat "Buy Now" or "Shop Now".
- Keep each headline under {HEADLINE_CHARS} characters.
- Add social proof (e.g., "1000+ Happy Buyers") where the data supports it.

### Description Instructions ({MAX_DESCRIPTIONS} total)
- Keep each description under {DESCRIPTION_CHARS} characters.
- Focus on benefits (e.g., "Solve [problem] with [product]").
- Include a call to action in at least one description (e.g., "Order Today!").
- Use simple words, urgency and trust, and stay specific to the data provided.

### Tone & Style
- Clear and direct, urgent, helpful and benefit-focused.
- Avoid jargon or vague promises.

### Output Format
Return ONLY a JSON object with this format:
{
    "headlines": ["headline1", "headline2", ...],
    "descriptions": ["description1", "description2", ...]
}

Return the raw JSON object without markdown code fences. \
The response must start with { and end with }.
"""
"""User message sent once per URL.

Placeholders: ``{URL}``, ``{CONTENT}``, ``{METADATA}``, ``{MAX_HEADLINES}``,
``{MAX_DESCRIPTIONS}``, ``{HEADLINE_CHARS}``, ``{DESCRIPTION_CHARS}``.
"""

"""URL validation, normalization and deduplication for submitted batches.

Pure functions only: no network access, no clock, no randomness.  The same
input text always yields the same verdicts, so this module is the single
place that decides which lines of a submission become billable work.

Pipeline::

    raw text ──parse_url_lines──▶ lines ──validate_url──▶ verdicts
                                              │
                                  dedupe + allow-list (process_url_input)
                                              ▼
                                    accepted URLs (first-seen order)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

#: Longest URL accepted, counted on the scheme-prefixed form.
MAX_URL_LENGTH: int = 2048

#: Scheme prepended to lines that do not start with ``http://`` or ``https://``.
DEFAULT_SCHEME: str = "https"

#: Exact hostnames that are never real landing pages.
PLACEHOLDER_HOSTNAMES: frozenset[str] = frozenset(
    {"localhost", "invalid-url", "example.com", "test.com"}
)

#: Substrings that mark a hostname as a placeholder (``shop.example.org``...).
PLACEHOLDER_HOST_FRAGMENTS: tuple[str, ...] = ("invalid", "example")

_SCHEME_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_HTTP_SCHEME_RE: re.Pattern[str] = re.compile(r"^https?://", re.IGNORECASE)
_HOST_LABEL_RE: re.Pattern[str] = re.compile(r"^[a-z0-9_](?:[a-z0-9_\-]*[a-z0-9_])?$")
_LINE_SPLIT_RE: re.Pattern[str] = re.compile(r"[\r\n]+")


@dataclass(frozen=True)
class UrlVerdict:
    """Validation outcome for one submitted line.

    Attributes:
        original: The line as submitted (untrimmed).
        is_valid: Whether the line is an acceptable URL.
        normalized: Canonical serialized form; set only when valid.
        error: Short reason; set only when invalid.
    """

    original: str
    is_valid: bool
    normalized: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class UrlBatch:
    """Result of processing a whole submission.

    Attributes:
        verdicts: One verdict per non-blank line, in input order.
        accepted: Unique normalized URLs, first occurrence order.
        rejected: Verdicts for lines that failed validation or the allow-list.
    """

    verdicts: tuple[UrlVerdict, ...]
    accepted: tuple[str, ...]
    rejected: tuple[UrlVerdict, ...] = field(default=())

    @property
    def rejected_lines(self) -> list[str]:
        return [v.original for v in self.rejected]


# ---------------------------------------------------------------------------
# Single URL
# ---------------------------------------------------------------------------


def _invalid(original: str, error: str) -> UrlVerdict:
    return UrlVerdict(original=original, is_valid=False, error=error)


def _serialize(scheme: str, hostname: str, port: int | None, path: str, query: str, fragment: str) -> str:
    """Rebuild a URL in canonical form: lower-case scheme/host, ``/`` for an empty path."""
    netloc = hostname
    default_port = 443 if scheme == "https" else 80
    if port is not None and port != default_port:
        netloc = f"{hostname}:{port}"
    return urlunsplit((scheme, netloc, path or "/", query, fragment))


def validate_url(line: str) -> UrlVerdict:
    """Validate and normalize a single submitted line.

    Steps: trim; prepend ``https://`` when no http(s) scheme is present;
    parse; reject non-http(s) schemes, missing or placeholder hostnames,
    hostnames without a dot or with a one-character top-level label, and
    URLs longer than :data:`MAX_URL_LENGTH`.

    Args:
        line: One line of user input.

    Returns:
        A :class:`UrlVerdict`.  Never raises.
    """
    trimmed = line.strip()
    if not trimmed:
        return _invalid(line, "URL is empty")

    if _HTTP_SCHEME_RE.match(trimmed):
        candidate = trimmed
    elif _SCHEME_RE.match(trimmed):
        return _invalid(line, "Only HTTP/HTTPS protocols allowed")
    else:
        candidate = f"{DEFAULT_SCHEME}://{trimmed}"

    if any(ch.isspace() for ch in candidate):
        return _invalid(line, "Invalid URL format")

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        return _invalid(line, f"Invalid URL format: {exc}")

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        return _invalid(line, "Only HTTP/HTTPS protocols allowed")

    hostname = (parts.hostname or "").rstrip(".")
    if not hostname:
        return _invalid(line, "Missing hostname")
    if not hostname.isascii():
        try:
            hostname = hostname.encode("idna").decode("ascii")
        except UnicodeError:
            return _invalid(line, f"Invalid hostname: {hostname}")

    if (
        hostname in PLACEHOLDER_HOSTNAMES
        or any(fragment in hostname for fragment in PLACEHOLDER_HOST_FRAGMENTS)
        or "." not in hostname
    ):
        logger.warning("url_validation: invalid hostname", extra={"hostname": hostname})
        return _invalid(line, f"Invalid hostname: {hostname}")

    labels = hostname.split(".")
    if not all(_HOST_LABEL_RE.match(label) for label in labels):
        return _invalid(line, f"Invalid hostname: {hostname}")

    if len(labels[-1]) < 2:
        logger.warning("url_validation: invalid TLD", extra={"hostname": hostname})
        return _invalid(line, "Invalid TLD (must be 2+ characters)")

    if len(candidate) > MAX_URL_LENGTH:
        return _invalid(line, f"URL exceeds {MAX_URL_LENGTH} characters")

    normalized = _serialize(scheme, hostname, port, parts.path, parts.query, parts.fragment)
    return UrlVerdict(original=line, is_valid=True, normalized=normalized)


# ---------------------------------------------------------------------------
# Domain allow-list
# ---------------------------------------------------------------------------


def is_allowed_domain(url: str, allowed_domains: Sequence[str] | None = None) -> bool:
    """Return ``True`` if *url*'s host is covered by *allowed_domains*.

    Entries match the host exactly (``"shop.com"``) or, with a ``*.`` prefix,
    the base domain and any subdomain of it (``"*.myshopify.com"``).  An empty
    or missing list allows every domain.  Invalid URLs are never allowed.
    """
    if not allowed_domains:
        return True

    verdict = validate_url(url)
    if not verdict.is_valid or verdict.normalized is None:
        return False

    hostname = urlsplit(verdict.normalized).hostname or ""
    for entry in allowed_domains:
        domain = entry.strip().lower()
        if domain.startswith("*."):
            base = domain[2:]
            if hostname == base or hostname.endswith(f".{base}"):
                return True
        elif hostname == domain:
            return True
    return False


# ---------------------------------------------------------------------------
# Whole submissions
# ---------------------------------------------------------------------------


def parse_url_lines(text: str | None) -> list[str]:
    """Split raw input into trimmed, non-blank lines."""
    if not text:
        return []
    return [line.strip() for line in _LINE_SPLIT_RE.split(text) if line.strip()]


def validate_urls(
    lines: Iterable[str],
    allowed_domains: Sequence[str] | None = None,
) -> list[UrlVerdict]:
    """Validate every line, then apply the allow-list to the valid ones."""
    verdicts: list[UrlVerdict] = []
    for line in lines:
        verdict = validate_url(line)
        if verdict.is_valid and not is_allowed_domain(line, allowed_domains):
            verdict = _invalid(line, "Domain not allowed")
        verdicts.append(verdict)
    return verdicts


def dedupe_urls(verdicts: Iterable[UrlVerdict]) -> list[str]:
    """Return unique normalized URLs from valid verdicts, first occurrence first."""
    seen: dict[str, None] = {}
    for verdict in verdicts:
        if verdict.is_valid and verdict.normalized is not None:
            seen.setdefault(verdict.normalized, None)
    return list(seen)


def process_url_input(
    text: str | None,
    allowed_domains: Sequence[str] | None = None,
) -> UrlBatch:
    """Turn raw multi-line input into a validated, deduplicated batch.

    Example::

        >>> batch = process_url_input("foo.com\\nfoo.com\\nnot a url\\nhttp://bar.org")
        >>> batch.accepted
        ('https://foo.com/', 'http://bar.org/')
        >>> batch.rejected_lines
        ['not a url']
    """
    verdicts = validate_urls(parse_url_lines(text), allowed_domains)
    accepted = dedupe_urls(verdicts)
    rejected = tuple(v for v in verdicts if not v.is_valid)
    return UrlBatch(verdicts=tuple(verdicts), accepted=tuple(accepted), rejected=rejected)

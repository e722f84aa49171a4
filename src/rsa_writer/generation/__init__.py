"""Ad-copy generation for scraped URLs.

Sub-modules:
- ``config``         - provider constants and the ad-copy prompt template
- ``provider``       - :class:`GenerationProvider` protocol (``generate``)
- ``openai_client``  - httpx-based OpenAI chat-completions client
- ``prompt``         - builds one prompt per scraped URL
- ``parser``         - turns a provider response into ``ParsedCopy`` or ``ParseFailed``
- ``orchestrator``   - :class:`CopyGenerator`, the sequential per-URL loop
"""

from __future__ import annotations

from rsa_writer.generation.openai_client import OpenAIClient
from rsa_writer.generation.orchestrator import CopyGenerator, GenerationReport
from rsa_writer.generation.parser import ParsedCopy, ParseFailed, parse_copy_response
from rsa_writer.generation.provider import GenerationProvider

__all__ = [
    "CopyGenerator",
    "GenerationProvider",
    "GenerationReport",
    "OpenAIClient",
    "ParseFailed",
    "ParsedCopy",
    "parse_copy_response",
]

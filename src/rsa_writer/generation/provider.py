"""Capability contract of a text-generation provider."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class GenerationProvider(Protocol):
    async def generate(self, prompt: str) -> str:
        """Return the provider's raw text response to *prompt*.

        Raises:
            ProviderError: If the call fails.
        """
        ...

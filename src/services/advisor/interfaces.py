"""Service interfaces for the DB advisor.

Protocols keep the advisor independent of the concrete HTTP client so tests
can inject scripted completions.
"""

from __future__ import annotations

from typing import Protocol


class CompletionClientProtocol(Protocol):
    """Protocol for a text completion service."""

    async def generate(self, prompt: str) -> str:
        """Return the full completion for `prompt` in one request."""
        ...

    async def generate_stream(self, prompt: str) -> str:
        """Return the completion for `prompt`, received as a stream."""
        ...

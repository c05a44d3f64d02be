"""Domain exceptions for the DB advisor pipeline.

The taxonomy separates failures the caller must see (upstream transport
errors, timeouts, an upstream that keeps answering with nothing) from the
anomalies the recovery pipeline absorbs itself. Each exception carries a
stable `error_code` used by the API layer to pick a status code and by logs
for tagging.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class AdvisorError(Exception):
    """Base class for DB advisor domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class UpstreamError(AdvisorError):
    """Connection failure or non-success status from the completion service."""

    def __init__(
        self,
        message: str = "Completion service request failed",
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message=message, error_code="upstream_error")
        self.status_code = status_code
        self.body = body


class AdvisorTimeoutError(AdvisorError):
    """The completion service did not answer within the configured bounds."""

    def __init__(
        self,
        message: str = "Completion service timed out",
        phase: str = "stream",
    ) -> None:
        super().__init__(message=message, error_code="upstream_timeout")
        self.phase = phase


class EmptyStreamResult(AdvisorError):
    def __init__(
        self,
        message: str = "Completion service returned no content",
    ) -> None:
        super().__init__(message=message, error_code="empty_response")


class NoJsonFound(AdvisorError):
    def __init__(self, message: str = "No JSON object found in text") -> None:
        super().__init__(message=message, error_code="no_json_found")


class AdvisorConfigurationError(AdvisorError):
    def __init__(
        self,
        message: str = (
            "MISTRAL_API_KEY is not set and no API key was provided with the request"
        ),
    ) -> None:
        super().__init__(message=message, error_code="configuration_error")


class ContextCollectionError(AdvisorError):
    def __init__(
        self, message: str = "Failed to collect database context"
    ) -> None:
        super().__init__(message=message, error_code="context_error")

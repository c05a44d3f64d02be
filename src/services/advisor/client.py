"""Client for a Mistral-compatible chat completions API.

Two call shapes share one request builder:

* `generate` - one-shot request, full JSON body.
* `generate_stream` - `stream: true`, server-sent events reassembled by
  `StreamAssembler`. A stream that completes with no content is retried once
  through `generate`; that single retry is the only retry performed here.

Timeouts: the header phase of a streaming call is bounded by
`connect_timeout`, the whole streaming call by `stream_timeout`. Exceeding
either raises `AdvisorTimeoutError` and whatever was accumulated is dropped.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from core.config import Settings, get_settings
from core.security_config import mask_secret
from schemas.completions import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
)
from services.advisor.exceptions import (
    AdvisorConfigurationError,
    AdvisorTimeoutError,
    EmptyStreamResult,
    UpstreamError,
)
from services.advisor.stream_assembler import assemble_stream


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.mistral.ai/v1/chat/completions"
DEFAULT_MODEL = "mistral-medium"

# Upstream error bodies are kept for diagnostics but bounded
MAX_ERROR_BODY_CHARS = 2000


class MistralClient:
    """Async client for one completion per call; holds no per-call state."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        stream_max_tokens: int = 3000,
        connect_timeout: float = 15.0,
        request_timeout: float = 120.0,
        stream_timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise AdvisorConfigurationError()
        self._api_key = api_key
        self.api_url = api_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.stream_max_tokens = stream_max_tokens
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.stream_timeout = stream_timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MistralClient:
        """Build a client, preferring an explicit key over MISTRAL_API_KEY."""
        settings = settings or get_settings()
        key = api_key if api_key and api_key.strip() else settings.MISTRAL_API_KEY
        if not key or not key.strip():
            raise AdvisorConfigurationError()

        logger.info("Mistral client initialized (API key: %s)", mask_secret(key))
        return cls(
            key,
            api_url=settings.MISTRAL_API_URL,
            model=settings.MISTRAL_MODEL,
            temperature=settings.MISTRAL_TEMPERATURE,
            max_tokens=settings.MISTRAL_MAX_TOKENS,
            stream_max_tokens=settings.MISTRAL_STREAM_MAX_TOKENS,
            connect_timeout=settings.MISTRAL_CONNECT_TIMEOUT_SECONDS,
            request_timeout=settings.MISTRAL_REQUEST_TIMEOUT_SECONDS,
            stream_timeout=settings.MISTRAL_STREAM_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _headers(self, *, stream: bool) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "text/event-stream" if stream else "application/json",
        }

    def _payload(self, prompt: str, *, stream: bool) -> dict[str, object]:
        request = ChatCompletionRequest(
            model=self.model,
            messages=[ChatMessage(role="user", content=prompt)],
            temperature=self.temperature,
            max_tokens=self.stream_max_tokens if stream else self.max_tokens,
            stream=True if stream else None,
        )
        return request.to_payload()

    def _http_client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def generate(self, prompt: str) -> str:
        """Send one non-streaming request and return the first choice's text.

        Raises:
            UpstreamError: On transport failure, non-2xx status, an undecodable
                body, or a body without choices.
            AdvisorTimeoutError: When the request exceeds its timeout.
        """
        timeout = httpx.Timeout(self.request_timeout, connect=self.connect_timeout)
        logger.debug("Sending completion request to %s", self.api_url)
        try:
            async with self._http_client(timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers=self._headers(stream=False),
                    json=self._payload(prompt, stream=False),
                )
                if response.is_error:
                    raise _upstream_status_error(response.status_code, response.text)
                body = ChatCompletionResponse.model_validate_json(response.content)
        except httpx.TimeoutException as exc:
            raise AdvisorTimeoutError(
                f"Completion request exceeded {self.request_timeout:.0f}s",
                phase="request",
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Error sending request to completion service: {exc}"
            ) from exc
        except ValidationError as exc:
            raise UpstreamError(
                "Unable to parse completion service response"
            ) from exc

        if not body.choices:
            raise UpstreamError("Completion service returned no choices")

        choice = body.choices[0]
        content = choice.message.text() if choice.message else choice.content()
        logger.debug("Completion received (%d characters)", len(content))
        return content

    async def generate_stream(self, prompt: str) -> str:
        """Stream a completion and return the reassembled text.

        Raises:
            UpstreamError: On transport failure or non-2xx status.
            AdvisorTimeoutError: When headers or the full stream are too slow.
            EmptyStreamResult: When both the stream and the single non-streaming
                retry return no content.
        """
        try:
            async with asyncio.timeout(self.stream_timeout):
                content = await self._stream_once(prompt)
        except TimeoutError as exc:
            raise AdvisorTimeoutError(
                f"Streaming response exceeded {self.stream_timeout:.0f}s",
                phase="stream",
            ) from exc

        logger.info("Streaming response received (%d characters)", len(content))
        if content:
            return content

        logger.warning("Streaming returned 0 characters; retrying without streaming")
        content = await self.generate(prompt)
        if not content:
            raise EmptyStreamResult()
        return content

    async def _stream_once(self, prompt: str) -> str:
        timeout = httpx.Timeout(self.stream_timeout, connect=self.connect_timeout)
        async with self._http_client(timeout) as client:
            request = client.build_request(
                "POST",
                self.api_url,
                headers=self._headers(stream=True),
                json=self._payload(prompt, stream=True),
            )
            try:
                async with asyncio.timeout(self.connect_timeout):
                    response = await client.send(request, stream=True)
            except (TimeoutError, httpx.TimeoutException) as exc:
                raise AdvisorTimeoutError(
                    "Completion service did not answer within "
                    f"{self.connect_timeout:.0f}s",
                    phase="connect",
                ) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(
                    f"Error sending streaming request to completion service: {exc}"
                ) from exc

            try:
                if response.is_error:
                    body = await response.aread()
                    raise _upstream_status_error(
                        response.status_code, body.decode("utf-8", errors="replace")
                    )
                if _is_full_message_body(response):
                    return _full_message_content(await response.aread())
                return await assemble_stream(response.aiter_bytes())
            except httpx.TimeoutException as exc:
                raise AdvisorTimeoutError(
                    "Completion stream stalled", phase="stream"
                ) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Error reading completion stream: {exc}") from exc
            finally:
                await response.aclose()


def _upstream_status_error(status_code: int, body: str) -> UpstreamError:
    body = body or "Unknown error"
    logger.error("Completion service error (%s): %s", status_code, body[:200])
    return UpstreamError(
        f"Completion service error ({status_code})",
        status_code=status_code,
        body=body[:MAX_ERROR_BODY_CHARS],
    )


def _is_full_message_body(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    return "application/json" in content_type and "event-stream" not in content_type


def _full_message_content(body: bytes) -> str:
    """Content of a streaming request answered with a plain JSON body."""
    try:
        parsed = ChatCompletionResponse.model_validate_json(body)
    except ValidationError:
        logger.warning("Undecodable JSON body on streaming request; ignoring it")
        return ""
    return "".join(choice.content() for choice in parsed.choices)

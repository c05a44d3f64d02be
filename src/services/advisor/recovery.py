"""Turn raw completion text into an advisory document, whatever its state.

Stages, first success wins:

1. decode the whole text as JSON;
2. sanitize, extract a balanced span, decode it; when the first span is not
   JSON (prose such as "format {json}:"), retry from the following `{`;
3. repair the text from the first `{` with `json_repair` (truncated
   answers), decode it;
4. synthesize a fallback document carrying the raw text.

Every decoded value goes through `restructure`. Textual malformation never
raises; it degrades to a less complete document.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from json_repair import repair_json

from schemas.advisor import AdvisoryDocument, StructuredAdvice, parse_advisory_document
from services.advisor.exceptions import NoJsonFound
from services.advisor.json_extractor import extract_balanced_span
from services.advisor.restructure import restructure
from services.advisor.sanitizer import sanitize_text


logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 1000

# Bounds the span stage on answers littered with braces
MAX_SPAN_ATTEMPTS = 8

_MISSING = object()


def _decode(candidate: str) -> Any:
    """Decode `candidate`, keeping only objects and arrays."""
    try:
        value = json.loads(candidate)
    except ValueError:
        return _MISSING
    if isinstance(value, dict | list):
        return value
    return _MISSING


def synthesize_fallback(
    raw_text: str, preview_chars: int = DEFAULT_PREVIEW_CHARS
) -> StructuredAdvice:
    """Minimal valid document for text with no recoverable structure.

    Confidence is exactly 0.0, which marks "nothing extracted" as opposed to a
    low confidence actually reported by the model.
    """
    preview = raw_text[:preview_chars]
    if len(raw_text) > preview_chars:
        preview += "..."
    return StructuredAdvice(
        diagnostic=(
            "The model response could not be parsed as a structured advisory. "
            f"Raw response ({len(raw_text)} characters): {preview}"
        ),
        recommended_actions=[],
        risks=[],
        suggested_queries=None,
        confidence=0.0,
        notes=None,
    )


def _spans(text: str) -> Iterator[str]:
    """Successive non-overlapping balanced spans, in order of appearance."""
    offset = 0
    for _ in range(MAX_SPAN_ATTEMPTS):
        start = text.find("{", offset)
        if start == -1:
            return
        try:
            span = extract_balanced_span(text, start)
        except NoJsonFound:
            return
        yield span
        # Resume after the span so objects nested in it are never candidates
        offset = start + len(span)


def _candidates(text: str) -> Iterator[tuple[str, str]]:
    """Yield (stage, candidate) pairs lazily, cheapest first."""
    yield "direct", text.strip()

    sanitized = sanitize_text(text)
    for span in _spans(sanitized):
        yield "span", span

    start = sanitized.find("{")
    if start != -1:
        yield "repair", repair_json(sanitized[start:])


def recover_document(
    text: str, preview_chars: int = DEFAULT_PREVIEW_CHARS
) -> AdvisoryDocument:
    """Recover the best advisory document available from `text`."""
    for stage, candidate in _candidates(text):
        value = _decode(candidate)
        if value is _MISSING:
            continue
        if stage == "repair" and not value:
            # Empty repair results give way to the fallback
            continue
        if stage != "direct":
            logger.info("Recovered JSON from model response at stage '%s'", stage)
        return restructure(parse_advisory_document(value))

    logger.warning(
        "No JSON recovered from model response (%d characters); using fallback",
        len(text),
    )
    return synthesize_fallback(text, preview_chars=preview_chars)

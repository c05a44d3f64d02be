"""Move misplaced advisory sections back to their canonical position.

Models regularly bury `actions_recommandees`, `risques` or `sql_suggere`
inside `diagnostic`. Hoisting is keyed on canonical field names (either
spelling), never on position, which makes `restructure` idempotent: its output
holds no nested section for a second pass to find.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from schemas.advisor import (
    ACTIONS_KEY,
    DIAGNOSTIC_KEY,
    HOISTED_KEYS,
    QUERIES_KEY,
    RISKS_KEY,
    AdvisoryDocument,
    RawAdvice,
    StructuredAdvice,
    canonical_key,
)


logger = logging.getLogger(__name__)

_ATTRIBUTE_FOR_KEY = {
    ACTIONS_KEY: "recommended_actions",
    RISKS_KEY: "risks",
    QUERIES_KEY: "suggested_queries",
}


def restructure(document: AdvisoryDocument) -> AdvisoryDocument:
    """Return a normalized copy of `document`; never raises on shape mismatch."""
    if isinstance(document, StructuredAdvice):
        return _restructure_structured(document)
    return _restructure_raw(document)


def _split_diagnostic(diagnostic: Any) -> tuple[Any, dict[str, Any]]:
    """Separate hoistable sections from the rest of an object diagnostic."""
    if not isinstance(diagnostic, dict):
        return diagnostic, {}
    remaining: dict[str, Any] = {}
    hoisted: dict[str, Any] = {}
    for key, value in diagnostic.items():
        canonical = canonical_key(key)
        if canonical in HOISTED_KEYS:
            if value is None:
                continue
            if canonical in hoisted:
                hoisted[canonical] = _merge_duplicate(
                    canonical, hoisted[canonical], value
                )
            else:
                hoisted[canonical] = value
            continue
        remaining[key] = value
    return remaining, hoisted


def _restructure_structured(document: StructuredAdvice) -> StructuredAdvice:
    diagnostic, hoisted = _split_diagnostic(document.diagnostic)

    sections: dict[str, Any] = {
        key: getattr(document, attribute)
        for key, attribute in _ATTRIBUTE_FOR_KEY.items()
    }
    for key, value in hoisted.items():
        if sections[key] is not None and sections[key] != value:
            logger.debug("Nested %s replaces top-level value", key)
        sections[key] = value

    if hoisted:
        logger.info("Hoisted %s out of diagnostic", ", ".join(sorted(hoisted)))

    return document.model_copy(
        update={
            "diagnostic": diagnostic,
            "recommended_actions": _array_or_empty(sections[ACTIONS_KEY]),
            "risks": _array_or_empty(sections[RISKS_KEY]),
            "suggested_queries": sections[QUERIES_KEY],
        }
    )


def _array_or_empty(value: Any) -> Any:
    return [] if value is None else value


def _fold_unknown_keys(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy canonical keys through and fold the rest into `diagnostic`."""
    known: dict[str, Any] = {}
    unknown: dict[str, Any] = {}
    for key, value in payload.items():
        canonical = canonical_key(key)
        if canonical is None:
            unknown[key] = value
        elif canonical not in known:
            known[canonical] = value
        else:
            known[canonical] = _merge_duplicate(canonical, known[canonical], value)

    if unknown:
        diagnostic = known.get(DIAGNOSTIC_KEY)
        if diagnostic is None:
            known[DIAGNOSTIC_KEY] = unknown
        elif isinstance(diagnostic, dict):
            known[DIAGNOSTIC_KEY] = _merge_folded(diagnostic, unknown)
        else:
            known[DIAGNOSTIC_KEY] = {DIAGNOSTIC_KEY: diagnostic, **unknown}
    return known


def _merge_folded(
    diagnostic: dict[str, Any], unknown: dict[str, Any]
) -> dict[str, Any]:
    """Add folded keys to an object diagnostic without overwriting its own.

    A folded key already present with another value is stored under the first
    free `<key>_<n>` name.
    """
    merged = dict(diagnostic)
    for key, value in unknown.items():
        if key not in merged:
            merged[key] = value
            continue
        if merged[key] == value:
            continue
        n = 2
        while f"{key}_{n}" in merged:
            n += 1
        merged[f"{key}_{n}"] = value
    return merged


def _merge_duplicate(key: str, first: Any, second: Any) -> Any:
    """Both spellings of one section are present; keep the content of both."""
    if isinstance(first, list) and isinstance(second, list):
        return first + [item for item in second if item not in first]
    if first is None:
        return second
    if second is not None and second != first:
        logger.warning("Conflicting duplicate values for %s; keeping the first", key)
    return first


def _restructure_raw(document: RawAdvice) -> AdvisoryDocument:
    payload = document.root
    if not isinstance(payload, dict):
        return document
    normalized = _fold_unknown_keys(payload)
    try:
        structured = StructuredAdvice.model_validate(normalized)
    except ValidationError:
        logger.debug("Raw document has no structured shape; keeping it verbatim")
        return document
    return _restructure_structured(structured)

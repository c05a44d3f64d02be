"""Strip markdown artifacts that models wrap around a JSON answer."""

from __future__ import annotations

import re


# Opening or closing fence anywhere in a line. A language tag is only part of
# the marker when nothing but whitespace follows it on that line.
_FENCE_RE = re.compile(
    r"```(?:[ \t]*[A-Za-z][\w+.-]*(?=[ \t]*(?:\r?\n|$)))?",
    re.IGNORECASE | re.MULTILINE,
)

SECTION_HEADINGS: frozenset[str] = frozenset(
    {
        "diagnostic",
        "diagnostics",
        "risks",
        "risques",
        "recommended actions",
        "actions recommandees",
        "actions recommandées",
        "suggested queries",
        "suggested sql",
        "sql suggere",
        "sql suggéré",
        "notes",
        "notes complementaires",
        "notes complémentaires",
        "confidence",
        "niveau de confiance",
        "response",
        "réponse",
        "reponse",
        "analysis",
        "analyse",
        "json",
    }
)

# Markdown decoration allowed around a bare heading: "## Risks", "**Risks:**"
_HEADING_DECORATION = "#*_ \t:"


def _is_bare_heading(line: str) -> bool:
    if "{" in line:
        return False
    stripped = line.strip().strip(_HEADING_DECORATION).strip()
    if not stripped:
        return False
    return stripped.lower() in SECTION_HEADINGS


def sanitize_text(text: str) -> str:
    """Remove code fences and bare section headings, keeping all JSON content.

    Fence markers are removed literally rather than by deleting their line,
    since a marker may share a line with content.
    """
    without_fences = _FENCE_RE.sub("", text)
    kept = [
        line for line in without_fences.split("\n") if not _is_bare_heading(line)
    ]
    return "\n".join(kept).strip()

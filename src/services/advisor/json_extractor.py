"""Locate the JSON object embedded in model output.

`extract_balanced_span` finds the minimal balanced object starting at a `{`,
tracking string literals and escapes so braces inside values (SQL text,
prose) are not counted.
"""

from __future__ import annotations

import logging

from services.advisor.exceptions import NoJsonFound


logger = logging.getLogger(__name__)


def extract_balanced_span(text: str, start: int = 0) -> str:
    """Return the first balanced `{...}` span of `text` at or after `start`.

    When the object never closes, fall back to the span ending at the last `}`
    after the opening `{` (best effort, possibly invalid JSON).

    Raises:
        NoJsonFound: If there is no `{`, or no `}` after it.
    """
    start = text.find("{", start)
    if start == -1:
        raise NoJsonFound()

    depth = 1
    in_string = False
    escape_pending = False
    for idx in range(start + 1, len(text)):
        ch = text[idx]
        if escape_pending:
            escape_pending = False
        elif ch == "\\":
            escape_pending = True
        elif ch == '"':
            in_string = not in_string
        elif ch == "{" and not in_string:
            depth += 1
        elif ch == "}" and not in_string:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]

    end = text.rfind("}")
    if end > start:
        logger.debug("Unbalanced JSON; using span up to last closing brace")
        return text[start : end + 1]
    raise NoJsonFound("JSON object starts but never closes")

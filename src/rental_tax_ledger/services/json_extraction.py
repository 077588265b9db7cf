"""Pull a JSON payload out of collaborator text that may carry formatting noise."""

import json
import re
from typing import Any

from rental_tax_ledger.logging_config import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _balanced_span(text: str, start: int) -> str | None:
    """Return the bracketed span opening at ``start``, honouring JSON strings."""
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : pos + 1]
    return None


def extract_json_payload(text: str | None) -> Any:
    """Extract the first JSON object or array from free-form text.

    Markdown code fences are unwrapped first. Returns ``{}`` when nothing
    parseable is found; callers treat that as "produced nothing usable".
    """
    if not text:
        return {}

    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text

    starts = [pos for pos in (candidate.find("{"), candidate.find("[")) if pos >= 0]
    if not starts:
        logger.warning("json_payload_missing", preview=text[:80])
        return {}

    span = _balanced_span(candidate, min(starts))
    if span is None:
        logger.warning("json_payload_unterminated", preview=text[:80])
        return {}

    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning("json_payload_invalid", error=str(e), preview=text[:80])
        return {}

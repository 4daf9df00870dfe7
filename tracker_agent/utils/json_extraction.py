"""
Permissive JSON extraction from model output

Models wrap JSON in code fences, prepend explanations or append trailing
commentary. extract_json_object digs out the first usable object and never
raises.
"""
import json
import logging
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


def _strip_code_fence(content: str) -> str:
    if "```json" in content:
        return content.split("```json")[1].split("```")[0].strip()
    if content.count("```") >= 2:
        return content.split("```")[1].split("```")[0].strip()
    return content


def _load_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _balanced_objects(content: str) -> Iterator[str]:
    """Yield every brace-balanced {...} span, honouring JSON string quoting"""
    for start, char in enumerate(content):
        if char != "{":
            continue
        depth = 0
        in_string = False
        escaped = False
        for end in range(start, len(content)):
            c = content[end]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
            elif c == '"':
                in_string = True
            elif c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    yield content[start:end + 1]
                    break


def extract_json_object(raw: Optional[str]) -> Dict[str, Any]:
    """
    Pull a JSON object out of free-form model output

    Order of attempts:
    1. Everything from the first "{" to the last "}"
    2. Each brace-balanced span, left to right
    3. Give up and return {}

    Example:
        >>> extract_json_object('Sure! {"count": 10} Hope that helps')
        {'count': 10}
    """
    if not raw:
        return {}

    content = _strip_code_fence(raw.strip())

    first = content.find("{")
    last = content.rfind("}")
    if first == -1 or last <= first:
        logger.debug(f"[JSON] No object found in response: {content[:80]!r}")
        return {}

    parsed = _load_object(content[first:last + 1])
    if parsed is not None:
        return parsed

    for candidate in _balanced_objects(content):
        parsed = _load_object(candidate)
        if parsed is not None:
            return parsed

    logger.warning(f"[JSON] Could not decode model response: {content[:120]!r}")
    return {}

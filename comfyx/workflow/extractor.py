"""Pull a workflow JSON object out of free-form text such as a chat reply."""

import json
import logging
import re

logger = logging.getLogger(__name__)

# ```json ... ``` or ``` ... ```; only the first block is considered.
_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


def extract_workflow_json(text: str | None) -> str | None:
    """Return the best candidate JSON object substring in *text*, or None.

    A fenced code block wins over raw brace scanning. Within raw text only the
    first balanced top-level object is tried.
    """
    if not text or not text.strip():
        return None

    match = _CODE_BLOCK.search(text)
    if match:
        candidate = match.group(1).strip()
        if _is_json_object(candidate):
            logger.debug("Extracted workflow JSON from fenced code block")
            return candidate

    candidate = _outermost_object(text)
    if candidate is not None:
        logger.debug("Extracted workflow JSON from raw object in text")
        return candidate

    logger.warning("No workflow JSON found in text")
    return None


def format_workflow(text: str) -> str:
    """Pretty-print JSON text; return it unchanged when it does not parse."""
    try:
        return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        logger.warning("Workflow JSON formatting failed: %s", exc)
        return text


def _is_json_object(text: str) -> bool:
    if not text or text[0] != "{":
        return False
    try:
        return isinstance(json.loads(text), dict)
    except ValueError:
        return False


def _outermost_object(text: str) -> str | None:
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                candidate = text[start:i + 1]
                return candidate if _is_json_object(candidate) else None
    return None

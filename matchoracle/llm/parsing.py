"""Helpers for turning raw LLM text into validated Python values."""

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_json_response(text: str) -> Optional[dict]:
    """
    Parse JSON from LLM response.

    Handles markdown code blocks and leading/trailing chatter around the
    object.

    Args:
        text: Raw text from LLM.

    Returns:
        Parsed dict or None if invalid.
    """
    if not text:
        return None

    text = text.strip()

    # Remove markdown code blocks if present
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    start = text.find("{")
    if start < 0:
        logger.warning("No JSON object found in response")
        return None

    # Find the matching closing brace (handle nested objects and strings)
    depth = 0
    end = -1
    in_string = False
    escaped = False
    for i, char in enumerate(text[start:], start):
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
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = i + 1
                break

    if end < 0:
        # Fallback to rfind if depth doesn't balance
        end = text.rfind("}") + 1
        if end <= start:
            logger.warning("Unterminated JSON object in response")
            return None

    json_text = text[start:end]

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        # LLMs sometimes put literal newlines inside string values
        try:
            parsed = json.loads(json_text.replace("\r\n", " ").replace("\n", " "))
            logger.info("JSON parsed after flattening newlines")
        except json.JSONDecodeError:
            logger.warning(f"JSON parse failed: {e} (first 300 chars: {json_text[:300]})")
            return None

    if not isinstance(parsed, dict):
        return None
    return parsed


def coerce_int(value: Any, default: int, lo: Optional[int] = None, hi: Optional[int] = None) -> int:
    """int(value) clamped to [lo, hi]; default when value is missing or not numeric."""
    try:
        result = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        result = default
    if lo is not None:
        result = max(lo, result)
    if hi is not None:
        result = min(hi, result)
    return result


def coerce_float(value: Any, default: float, lo: Optional[float] = None, hi: Optional[float] = None) -> float:
    """float(value) clamped to [lo, hi]; default when value is missing or not numeric."""
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        result = default
    if result != result:  # NaN
        result = default
    if lo is not None:
        result = max(lo, result)
    if hi is not None:
        result = min(hi, result)
    return result

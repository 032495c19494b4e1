"""JSON extraction helpers for model output."""

from __future__ import annotations

import json
from typing import Any, Dict


def parse_json_payload(text: str) -> Dict[str, Any]:
    """
    Parse the first JSON object embedded in model output.

    The model may wrap the object in prose or markdown fences; only the first
    balanced ``{...}`` span is considered.

    Args:
        text: raw model output

    Returns:
        Parsed JSON object

    Raises:
        json.JSONDecodeError: no balanced object found, or it does not parse
    """
    text = (text or "").strip()

    span = extract_first_json_object(text)
    if not span:
        raise json.JSONDecodeError(
            f"No JSON object found in model output. First 100 chars: {text[:100]}...",
            text,
            0,
        )

    data = json.loads(span)
    if not isinstance(data, dict):
        raise json.JSONDecodeError("Top-level JSON value is not an object", span, 0)
    return data


def extract_first_json_object(text: str) -> str:
    """
    Extract the first complete JSON object using brace balancing.

    Braces inside string literals (including escaped quotes) are ignored.

    Args:
        text: input text

    Returns:
        The JSON substring, or "" when no balanced object exists
    """
    start = text.find("{")
    if start == -1:
        return ""

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if not in_string:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]

    return ""

"""Shared helpers for turning model text into structured data.

This module provides:
- _strip_json_fences: Remove markdown code fences from model output
- extract_structured: Pull the embedded JSON object out of a completion,
  degrading to a wrapper object instead of raising
"""

import json
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

PARSE_FAILED = "JSON parsing failed"
NO_STRUCTURE = "Could not parse structured response"


def _strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content


def extract_structured(text: str) -> dict[str, Any]:
    """Decode the JSON object embedded in a completion.

    Takes the span from the first "{" to the last "}" so prose before or after
    the object is ignored.

    Returns:
        The decoded object, or {"response": text, "reasoning": ...} when there
        is no span, the span is not valid JSON, or it is not an object
    """
    content = _strip_json_fences(text)
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end < start:
        return {"response": text, "reasoning": NO_STRUCTURE}

    try:
        parsed = json.loads(content[start : end + 1])
    except json.JSONDecodeError as exc:
        logger.warning("structured_parse_failed", error=str(exc), length=len(text))
        return {"response": text, "reasoning": PARSE_FAILED}

    if not isinstance(parsed, dict):
        return {"response": text, "reasoning": PARSE_FAILED}
    return parsed

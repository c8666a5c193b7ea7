"""
JSON parsing for language-model responses.

Models asked for JSON still wrap it in prose or markdown fences, leave
trailing commas or add comments. The helpers here recover the object when
possible; ``parse_analysis_json`` additionally checks that the combined
summary/task shape is present so the caller can treat anything else as a
malformed response.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_PATTERNS = (
    re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

# Keys that must be present for a response to count as an analysis
ANALYSIS_REQUIRED_KEYS = ("summary", "tasks")


def extract_json_from_text(text: str) -> str | None:
    """
    Pull the JSON object out of a model response.

    Looks inside ```json fences first, then for the outermost ``{...}``.

    Returns:
        The candidate JSON string, or None when no object is present
    """
    text = text.strip()

    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip().startswith("{"):
            return match.group(1).strip()

    match = _OBJECT_PATTERN.search(text)
    if match:
        return match.group(0)
    return None


def clean_json_string(text: str) -> str:
    """Remove JS-style comments and trailing commas."""
    text = re.sub(r"(?m)^\s*//[^\n]*", "", text)
    text = re.sub(r"/\*[\s\S]*?\*/", "", text)
    text = re.sub(r",\s*([\}\]])", r"\1", text)
    return text.strip()


def _balance_braces(text: str) -> str:
    open_count = text.count("{")
    close_count = text.count("}")
    if open_count > close_count:
        text += "}" * (open_count - close_count)
    return text


def parse_json_safely(text: str, default: dict[str, Any] | None = None) -> dict[str, Any] | None:
    """
    Parse a JSON object with progressively more forgiving strategies.

    1. Direct parse
    2. Extract from fences/prose, then parse
    3. Strip comments and trailing commas, then parse
    4. Close unbalanced braces, then parse

    Returns:
        The parsed dict, or ``default`` when nothing worked
    """
    if not text or not text.strip():
        return default

    try:
        result = json.loads(text)
        return result if isinstance(result, dict) else default
    except json.JSONDecodeError:
        pass

    extracted = extract_json_from_text(text)
    if extracted is None:
        logger.warning(f"[json] No JSON object in response: {text[:100]}...")
        return default

    for candidate in (extracted, clean_json_string(extracted)):
        try:
            result = json.loads(candidate)
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            continue

    try:
        result = json.loads(_balance_braces(clean_json_string(extracted)))
        if isinstance(result, dict):
            logger.info("[json] Parsed after brace repair")
            return result
    except json.JSONDecodeError:
        pass

    logger.warning(f"[json] Failed to parse JSON after all strategies: {text[:100]}...")
    return default


def parse_analysis_json(text: str) -> dict[str, Any] | None:
    """
    Parse a combined summary + task detection response.

    Accepts either a flat object (``summary`` as a string plus
    ``keyPoints``) or ``summary`` as a nested object. The result always has
    ``summary`` (str), ``key_points``, ``sentiment``, ``confidence`` and
    ``tasks`` (list of dicts).

    Returns:
        Normalized dict, or None when the response isn't a usable analysis
    """
    data = parse_json_safely(text)
    if data is None:
        return None

    if any(key not in data for key in ANALYSIS_REQUIRED_KEYS):
        logger.warning(f"[json] Analysis response missing keys: {sorted(data)}")
        return None

    summary = data.get("summary")
    if isinstance(summary, dict):
        key_points = summary.get("keyPoints", summary.get("key_points"))
        sentiment = summary.get("sentiment", data.get("sentiment"))
        summary_confidence = summary.get("confidence")
        summary_text = summary.get("summary") or summary.get("text") or ""
    else:
        key_points = data.get("keyPoints", data.get("key_points"))
        sentiment = data.get("sentiment")
        summary_confidence = None
        summary_text = summary or ""

    tasks = data.get("tasks")
    if not isinstance(tasks, list):
        return None

    return {
        "summary": str(summary_text),
        "key_points": ensure_list(key_points),
        "sentiment": str(sentiment or "neutral"),
        "summary_confidence": summary_confidence,
        "confidence": data.get("confidence"),
        "tasks": [t for t in tasks if isinstance(t, dict)],
        "is_multi_task": data.get("isMultiTask", data.get("is_multi_task")),
    }


def ensure_list(value: Any) -> list[str]:
    """Coerce a string, list or None into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    return []


__all__ = [
    "ANALYSIS_REQUIRED_KEYS",
    "clean_json_string",
    "ensure_list",
    "extract_json_from_text",
    "parse_analysis_json",
    "parse_json_safely",
]

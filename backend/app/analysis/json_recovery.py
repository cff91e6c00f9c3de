"""
Recovery of structured JSON from free-text LLM responses.

Models wrap JSON in code fences, prepend commentary, emit Python-style
literals or return nested arrays as strings. The helpers here try the cheap
strategies first and only fall back to textual repair when parsing fails.
"""

from __future__ import annotations

import json
import re
from typing import Any

from backend.app.core.errors import AnalysisError
from backend.app.observability.logging import log_event

_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
_FENCE_START = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_END = re.compile(r"\s*```$")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
_WORD_KEY = re.compile(r"(\w+):")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_START.sub("", cleaned, count=1)
        cleaned = _FENCE_END.sub("", cleaned)
    return cleaned.strip()


def _python_literals_to_json(text: str) -> str:
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    return re.sub(r"\bNone\b", "null", text)


def repair_json_text(text: str) -> str:
    repaired = _BARE_KEY.sub(r'\1"\2":', text)
    if "'" in repaired and '"' not in repaired.replace('\\"', ""):
        repaired = repaired.replace("'", '"')
    elif "'" in repaired:
        repaired = re.sub(r"'([^'\"\n]*)'", r'"\1"', repaired)
    repaired = _TRAILING_COMMA.sub(r"\1", repaired)
    return _python_literals_to_json(repaired)


def _load_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Coerce an LLM response into a JSON object.

    Strategies, in order: parse after removing code fences, parse the
    outermost brace-delimited block, parse that block after repairing keys,
    quotes and trailing commas.

    Raises:
        AnalysisError: If no JSON object can be recovered.
    """
    cleaned = strip_code_fences(text)
    parsed = _load_object(cleaned)
    if parsed is not None:
        return parsed

    match = _OBJECT_PATTERN.search(cleaned)
    if not match:
        log_event("json_recovery_failed", reason="no_object", preview=cleaned[:200])
        raise AnalysisError("LLM did not return valid JSON")

    candidate = match.group(0)
    parsed = _load_object(candidate)
    if parsed is not None:
        return parsed

    parsed = _load_object(repair_json_text(candidate))
    if parsed is not None:
        log_event("json_recovery_repaired", chars=len(candidate))
        return parsed

    log_event("json_recovery_failed", reason="unparseable", preview=candidate[:200])
    raise AnalysisError("LLM did not return valid JSON")


def parse_if_stringified(value: Any) -> Any:
    """Decode arrays/objects that the model returned as JSON-ish strings."""
    if not isinstance(value, str):
        return value
    if not ("\\n" in value or value.startswith("[") or value.startswith("{")):
        return value

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        pass

    cleaned = value.replace("\\n", "").replace("\\'", "'")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if cleaned.startswith("[") and "'" in cleaned:
        cleaned = _WORD_KEY.sub(r'"\1":', cleaned)
        cleaned = cleaned.replace("'", '"')
        cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    if value.startswith("[") and value.endswith("]"):
        try:
            return json.loads(value.replace("'", '"'))
        except json.JSONDecodeError:
            return []
    return value


def ensure_array(value: Any, fallback: list | None = None) -> list:
    parsed = parse_if_stringified(value)
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return [parsed]
    if value is not None:
        log_event("ensure_array_fallback", value_type=type(parsed).__name__)
    return list(fallback) if fallback is not None else []


def coerce_score(value: Any) -> float | int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    else:
        return 0
    if number != number:
        return 0
    number = max(0, min(100, number))
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def coerce_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    return 0.0

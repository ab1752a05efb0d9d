from typing import Any, List, Optional

from flask import jsonify, request


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, malformed, array) becomes {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error(message: str, status: int, **extra):
    payload = {"error": message}
    payload.update(extra)
    return jsonify(payload), status


def validation_failed(details: List[str]):
    return error("Validation failed", 400, details=details)


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def like_term(value: str) -> str:
    """%value% for ILIKE, with the wildcards in ``value`` escaped (use escape="\\")."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

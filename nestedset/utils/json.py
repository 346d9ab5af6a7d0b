"""JSON helpers for the attributes column."""

import json
from typing import Any


def parse_json_field(raw: str | dict | None) -> dict[str, Any]:
    """Parse a JSON object stored as TEXT, returning {} on failure or empty.

    Accepts dicts as-is. Returns {} for: None, empty string, invalid JSON,
    non-dict JSON.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except (ValueError, TypeError):
            pass
    return {}


def json_str(value: dict | None) -> str:
    """Serialize attributes for storage. '{}' for None or empty."""
    if not value:
        return "{}"
    return json.dumps(value, sort_keys=True)

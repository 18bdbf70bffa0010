"""
Tolerant decoding of JSON payloads read from storage.

Stored step configs and selectors come from several generations of the
editor: plain objects, JSON strings, JSON strings encoded twice, strings with
a byte order mark, or not JSON at all.
"""

import json
from typing import Any, Dict, Optional, Union

BOM = "\ufeff"


def clean_text(raw: Optional[str]) -> str:
    """Strip a leading BOM and surrounding whitespace."""
    if not raw:
        return ""
    return raw.replace(BOM, "").strip()


def parse_json_payload(raw: Union[str, Dict[str, Any], None]) -> Any:
    """
    Decode a stored payload.

    Returns:
        The decoded value (a second decode is applied when the first one
        yields a JSON-looking string), the dict itself when one is passed,
        or None when the payload is empty or not JSON.
    """
    if raw is None or isinstance(raw, dict):
        return raw
    text = clean_text(str(raw))
    if not text:
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(value, str):
        inner = clean_text(value)
        if inner.startswith(("{", "[")):
            try:
                return json.loads(inner)
            except json.JSONDecodeError:
                return value
    return value


def parse_step_config(raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Decode a step config, falling back to an empty dict."""
    value = parse_json_payload(raw)
    return value if isinstance(value, dict) else {}

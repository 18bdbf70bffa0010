"""
Recovery of executable scripts from stored step payloads.

Script steps were saved by several editor versions. Depending on the version
the script sits in a proper JSON config, in a JSON config whose quotes were
escaped once more, in a config that is no longer valid JSON at all, or as a
bare function in the config or value column. ``classify_payload`` tries the
known layouts in a fixed order and returns a tagged payload; nothing
downstream looks at the raw storage format again.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from edubot.core.parsing import clean_text, parse_json_payload

_SCRIPT_SEGMENT = re.compile(r'"script"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
_SCRIPT_BEFORE_STORE_AS = re.compile(r'"script"\s*:\s*"([\s\S]*?)"\s*,\s*"storeAs"')
_STORE_AS_SEGMENT = re.compile(r'"storeAs"\s*:\s*"([^"]+)"')
_FUNCTION_SHAPE = re.compile(
    r"^(?:\(\s*)?(?:async\s+)?function\b|^\(\s*(?:async\s*)?\([^)]*\)\s*=>",
    re.IGNORECASE,
)
_DOM_IDIOMS = ("querySelector", "getAttribute", "document.")


@dataclass(frozen=True)
class WellFormedScript:
    """Script read from a config that decoded cleanly."""

    script: str
    store_as: Optional[str] = None
    kind: str = "well_formed"


@dataclass(frozen=True)
class LegacyEscapedScript:
    """Script recovered from an over-escaped or broken config."""

    script: str
    store_as: Optional[str] = None
    kind: str = "legacy_escaped"


@dataclass(frozen=True)
class RawExpressionScript:
    """Bare function or DOM expression stored outside any JSON object."""

    script: str
    origin: str = "config"
    store_as: Optional[str] = None
    kind: str = "raw_expression"


@dataclass(frozen=True)
class EmptyScript:
    """No script could be recovered."""

    reason: str = "No script found in step config or value"
    store_as: Optional[str] = None
    kind: str = "empty"


ScriptPayload = Union[WellFormedScript, LegacyEscapedScript, RawExpressionScript, EmptyScript]


def unescape_json_string(text: str) -> str:
    """
    Decode JSON string escapes (``\\"``, ``\\\\``, ``\\n``...).

    Falls back to replacing escaped quotes and backslashes when the text is
    not a valid JSON string body.
    """
    try:
        decoded = json.loads(f'"{text}"', strict=False)
    except json.JSONDecodeError:
        return text.replace('\\"', '"').replace("\\\\", "\\")
    return decoded if isinstance(decoded, str) else text


def _store_as_from(config: Dict[str, Any]) -> Optional[str]:
    store_as = config.get("storeAs")
    if isinstance(store_as, str) and store_as.strip():
        return store_as.strip()
    return None


def _script_from_reparse(raw_text: str) -> Optional[LegacyEscapedScript]:
    for candidate in (raw_text, unescape_json_string(raw_text)):
        parsed = parse_json_payload(candidate)
        if isinstance(parsed, dict):
            script = parsed.get("script")
            if isinstance(script, str) and script.strip():
                return LegacyEscapedScript(script, _store_as_from(parsed))
    return None


def _script_from_segments(raw_text: str) -> Optional[LegacyEscapedScript]:
    for candidate in (raw_text, raw_text.replace('\\"', '"')):
        match = _SCRIPT_BEFORE_STORE_AS.search(candidate) or _SCRIPT_SEGMENT.search(candidate)
        if not match:
            continue
        script = unescape_json_string(match.group(1))
        if not script.strip():
            continue
        store_match = _STORE_AS_SEGMENT.search(candidate)
        return LegacyEscapedScript(script, store_match.group(1) if store_match else None)
    return None


def looks_like_function(text: str) -> bool:
    return bool(_FUNCTION_SHAPE.match(text))


def looks_like_dom_script(text: str) -> bool:
    return looks_like_function(text) or any(idiom in text for idiom in _DOM_IDIOMS)


def classify_payload(
    config: Dict[str, Any],
    raw_config: Any = None,
    value: Optional[str] = None,
) -> ScriptPayload:
    """
    Resolve the script of an ``execute_script`` step.

    Order of attempts:

    1. ``config["script"]`` of the decoded config
    2. the raw config re-decoded as JSON, also after unescaping it once
    3. the ``"script": "..."`` segment cut out of the raw text
    4. the raw config itself when it is a bare function
    5. the legacy value when it is a function or uses DOM idioms

    Args:
        config: Decoded step config ({} when it did not decode)
        raw_config: Config exactly as stored
        value: Legacy value of the step

    Returns:
        The classified payload. ``EmptyScript`` when nothing usable was found.
    """
    store_as = _store_as_from(config)

    script = config.get("script")
    if isinstance(script, str) and clean_text(script):
        return WellFormedScript(script, store_as)

    raw_text = clean_text(raw_config) if isinstance(raw_config, str) else ""
    if raw_text:
        recovered = _script_from_reparse(raw_text) or _script_from_segments(raw_text)
        if recovered is not None:
            return LegacyEscapedScript(recovered.script, store_as or recovered.store_as)

        if looks_like_function(raw_text):
            return RawExpressionScript(raw_text, origin="config", store_as=store_as)

    legacy_value = clean_text(value) if isinstance(value, str) else ""
    if legacy_value and looks_like_dom_script(legacy_value):
        return RawExpressionScript(legacy_value, origin="value", store_as=store_as)

    return EmptyScript(store_as=store_as)

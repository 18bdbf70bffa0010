"""Script extraction and execution for EDUBot."""

from edubot.scripting.extraction import (
    EmptyScript,
    LegacyEscapedScript,
    RawExpressionScript,
    ScriptPayload,
    WellFormedScript,
    classify_payload,
    unescape_json_string,
)
from edubot.scripting.runner import (
    EVALUATION_WRAPPER,
    ScriptRunner,
    make_serializable,
    normalize_script,
)

__all__ = [
    "EVALUATION_WRAPPER",
    "EmptyScript",
    "LegacyEscapedScript",
    "RawExpressionScript",
    "ScriptPayload",
    "ScriptRunner",
    "WellFormedScript",
    "classify_payload",
    "make_serializable",
    "normalize_script",
    "unescape_json_string",
]

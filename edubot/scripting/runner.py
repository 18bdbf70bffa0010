"""
Normalization and in-page evaluation of recovered scripts.
"""

import json
import re
from collections.abc import Mapping
from typing import Any, Dict, MutableMapping, Optional

from edubot.core.interfaces import BrowserPort
from edubot.core.parsing import clean_text
from edubot.core.types import Record
from edubot.error_handling.exceptions import ScriptExecutionError, ScriptExtractionError
from edubot.monitoring.logger import get_logger
from edubot.scripting.extraction import EmptyScript, ScriptPayload, unescape_json_string

logger = get_logger(__name__)

SNIPPET_LENGTH = 200

_FUNCTION_HEAD = re.compile(r"^\(?\s*(?:async\s+)?function", re.IGNORECASE)
_EMPTY_CALL_TAIL = re.compile(r"\(\s*\)\s*;?\s*$")
_TRAILING_SEMICOLONS = re.compile(r"[;\s]+$")

# Compiles the script as an expression first and as a function body second,
# calls the result when it is a function and awaits it when it is a promise.
EVALUATION_WRAPPER = """
async ({ script, record, executionContext }) => {
    let compiled;
    try {
        compiled = new Function('record', 'executionContext', 'return (' + script + '\\n);');
    } catch (expressionError) {
        compiled = new Function('record', 'executionContext', script);
    }
    let result = compiled(record, executionContext);
    if (typeof result === 'function') {
        result = result(record, executionContext);
    }
    result = await result;
    if (result === undefined) {
        return null;
    }
    try {
        return JSON.parse(JSON.stringify(result));
    } catch (serializationError) {
        if (result && typeof result === 'object') {
            const copy = {};
            for (const key of Object.keys(result)) {
                const value = result[key];
                const plain = value === null || ['string', 'number', 'boolean'].includes(typeof value);
                copy[key] = plain ? value : String(value);
            }
            return copy;
        }
        return String(result);
    }
}
"""


def snippet(script: Optional[str], length: int = SNIPPET_LENGTH) -> str:
    if not script:
        return ""
    return script if len(script) <= length else script[:length] + "..."


def normalize_script(script: str) -> str:
    """
    Turn a recovered script into evaluable source.

    Strips the BOM, unifies line endings, decodes leftover JSON escapes,
    rewrites a zero-argument function IIFE to receive
    ``(record, executionContext)`` and drops trailing semicolons.
    """
    text = clean_text(script).replace("\r\n", "\n")
    if '\\"' in text or "\\\\" in text:
        text = unescape_json_string(text).strip()

    if _FUNCTION_HEAD.match(text) and _EMPTY_CALL_TAIL.search(text):
        text = _EMPTY_CALL_TAIL.sub("(record, executionContext)", text)

    return _TRAILING_SEMICOLONS.sub("", text)


def _is_json_value(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def make_serializable(value: Any) -> Any:
    """
    Return ``value`` if it is JSON-serializable, otherwise a shallow field
    copy with non-serializable fields coerced to strings, otherwise ``str()``.
    """
    if _is_json_value(value):
        return value
    fields: Optional[Dict[str, Any]] = None
    if isinstance(value, Mapping):
        fields = {str(k): v for k, v in value.items()}
    elif hasattr(value, "__dict__"):
        fields = dict(vars(value))
    if fields is not None:
        return {k: v if _is_json_value(v) else str(v) for k, v in fields.items()}
    return str(value)


class ScriptRunner:
    """Evaluates classified script payloads in the page."""

    def __init__(self, browser: BrowserPort) -> None:
        self.browser = browser

    async def run(
        self,
        payload: ScriptPayload,
        record: Record,
        context: MutableMapping[str, Any],
    ) -> Any:
        """
        Evaluate a script payload with the record and execution context.

        The result is stored in ``context`` under the payload's ``store_as``
        name when one is declared and the script returned a value.

        Raises:
            ScriptExtractionError: No usable script in the payload
            ScriptExecutionError: The script failed in the page
        """
        if isinstance(payload, EmptyScript):
            raise ScriptExtractionError(payload.reason)

        script = normalize_script(payload.script)
        if not script:
            raise ScriptExtractionError(
                "Empty script after cleaning", raw_snippet=snippet(payload.script)
            )

        logger.debug(
            "Evaluating script",
            extra={"payload_kind": payload.kind, "script_length": len(script)},
        )
        try:
            result = await self.browser.evaluate(
                EVALUATION_WRAPPER,
                {
                    "script": script,
                    "record": make_serializable(dict(record)),
                    "executionContext": make_serializable(dict(context)),
                },
            )
        except Exception as e:
            raise ScriptExecutionError(
                f"Script execution failed: {e}",
                script_snippet=snippet(script),
                cause=e,
            ) from e

        result = make_serializable(result)
        if payload.store_as and result is not None:
            context[payload.store_as] = result
            logger.info(
                "Script result stored",
                extra={"store_as": payload.store_as},
            )
        return result

"""
``{{name}}`` placeholder substitution for step values and selectors.
"""

import json
import re
from typing import Any, Mapping, Optional

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def lookup_variable(
    name: str,
    record: Optional[Mapping[str, Any]],
    context: Optional[Mapping[str, Any]],
) -> Optional[Any]:
    """Execution context first, then the record; None when neither has a value."""
    for source in (context, record):
        if source and source.get(name) is not None:
            return source[name]
    return None


def substitute(
    text: Optional[str],
    record: Optional[Mapping[str, Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Replace every ``{{name}}`` in ``text``.

    Names are trimmed. Unresolved placeholders become an empty string.
    Substituted values are not scanned again.

    Args:
        text: Template text, None is treated as empty
        record: Current data record
        context: Values stored by earlier script steps of the same run

    Returns:
        The rendered string
    """
    if not text:
        return ""

    def _replace(match: re.Match) -> str:
        value = lookup_variable(match.group(1).strip(), record, context)
        return "" if value is None else _render(value)

    return PLACEHOLDER_PATTERN.sub(_replace, str(text))

"""Decoding of stored selector payloads."""

from typing import Any, Dict, Union

from pydantic import ValidationError

from edubot.core.parsing import clean_text, parse_json_payload
from edubot.core.types import SelectorDescription
from edubot.monitoring.logger import get_logger

logger = get_logger(__name__)


def parse_selector(raw: Union[str, Dict[str, Any], SelectorDescription, None]) -> SelectorDescription:
    """
    Build a selector description from a stored selector.

    A JSON object becomes a structured description. Anything else that is
    not empty (a bare CSS selector, an XPath, a JSON string) becomes the
    primary selector.
    """
    if isinstance(raw, SelectorDescription):
        return raw
    if raw is None:
        return SelectorDescription()

    value = parse_json_payload(raw)
    if isinstance(value, dict):
        try:
            return SelectorDescription.model_validate(value)
        except ValidationError as e:
            logger.warning(
                "Selector object did not validate, keeping primary only",
                extra={"error": str(e)},
            )
            primary = value.get("primary")
            return SelectorDescription(primary=str(primary) if primary else None)
    if isinstance(value, str):
        return SelectorDescription(primary=clean_text(value) or None)

    text = clean_text(str(raw)) if not isinstance(raw, dict) else ""
    return SelectorDescription(primary=text or None)

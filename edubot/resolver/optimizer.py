"""
Selector description pruning.

Recorded selectors often contain parts that break on the next page load:
framework-generated ids, CSS paths anchored on those ids, long text snippets.
``optimize_selector`` keeps the parts that survive page reloads.
"""

import re

from edubot.core.types import SelectorDescription
from edubot.resolver.strategies import is_stable_attribute

DYNAMIC_ID_PATTERN = re.compile(r"\d{5,}")
MAX_TEXT_LENGTH = 30

_CSS_ID_REFERENCE = re.compile(r"#([^\s.#\[\]>+~:,()]+)")
_ATTR_ID_REFERENCE = re.compile(r"\[\s*id\s*[~|^$*]?=\s*[\"']?([^\"'\]]+)")


def references_dynamic_id(selector: str) -> bool:
    """Whether a CSS selector pins an id that looks auto-generated."""
    ids = _CSS_ID_REFERENCE.findall(selector) + _ATTR_ID_REFERENCE.findall(selector)
    return any(DYNAMIC_ID_PATTERN.search(value) for value in ids)


def optimize_selector(description: SelectorDescription) -> SelectorDescription:
    """
    Drop the fragile parts of a selector description.

    * ids with five or more consecutive digits are dropped
    * name, xpath and position are kept
    * only data-*, aria-*, role, placeholder and title attributes are kept
    * css is kept only when it does not reference an id
    * text is kept only when shorter than 30 characters
    * primary is kept unless it references an auto-generated id

    Applying it twice gives the same result as applying it once.
    """
    primary = description.primary
    if primary and references_dynamic_id(primary):
        primary = None

    element_id = description.id
    if element_id and DYNAMIC_ID_PATTERN.search(element_id):
        element_id = None

    css = description.css
    if css and "#" in css:
        css = None

    text = description.text.strip() if description.text else None
    if text and len(text) >= MAX_TEXT_LENGTH:
        text = None

    return SelectorDescription(
        primary=primary or None,
        id=element_id or None,
        name=description.name or None,
        attributes={
            key: value
            for key, value in description.attributes.items()
            if is_stable_attribute(key)
        },
        xpath=description.xpath or None,
        css=css,
        text=text or None,
        position=description.position,
        alternatives=[
            alt for alt in description.alternatives if not references_dynamic_id(alt)
        ],
    )

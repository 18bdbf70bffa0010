"""Element resolution for EDUBot."""

from edubot.resolver.optimizer import optimize_selector, references_dynamic_id
from edubot.resolver.parsing import parse_selector
from edubot.resolver.resolver import ElementResolver, Resolution
from edubot.resolver.strategies import (
    DEFAULT_STRATEGIES,
    by_css,
    by_id,
    by_name,
    by_position,
    by_primary,
    by_stable_attributes,
    by_text,
    by_xpath,
    xpath_literal,
)

__all__ = [
    "DEFAULT_STRATEGIES",
    "ElementResolver",
    "Resolution",
    "by_css",
    "by_id",
    "by_name",
    "by_position",
    "by_primary",
    "by_stable_attributes",
    "by_text",
    "by_xpath",
    "optimize_selector",
    "parse_selector",
    "references_dynamic_id",
    "xpath_literal",
]

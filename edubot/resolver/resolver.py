"""
Multi-strategy element resolution with a bounded retry loop.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from edubot.config.settings import Settings, get_settings
from edubot.core.interfaces import BrowserPort
from edubot.core.types import SelectorDescription
from edubot.error_handling.exceptions import ElementNotFoundError
from edubot.monitoring.logger import get_logger
from edubot.resolver.strategies import DEFAULT_STRATEGIES, StrategyFn

logger = get_logger(__name__)

# Description field each built-in strategy reads.
_STRATEGY_INPUTS = {
    "primary": "primary",
    "id": "id",
    "name": "name",
    "attributes": "attributes",
    "xpath": "xpath",
    "css": "css",
    "text": "text",
    "position": "position",
}


@dataclass
class Resolution:
    """A located element and how it was found."""

    element: Any
    strategy: str
    attempts: int


class ElementResolver:
    """
    Locates elements by running an ordered list of strategies.

    A full pass over the strategies is one attempt. Passes repeat with a short
    delay until one strategy returns an element, the attempt budget is used
    up, or the time window closes.

    The window is an upper bound only. With the default settings (4 passes,
    400 ms apart) the attempt budget ends a failed resolution after about
    1.2 s, long before a 30 s window would. Raise ``resolver_max_attempts``
    for pages that render elements late.
    """

    def __init__(
        self,
        browser: BrowserPort,
        strategies: Optional[List[Tuple[str, StrategyFn]]] = None,
        max_attempts: Optional[int] = None,
        attempt_delay_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.browser = browser
        self.strategies = strategies or list(DEFAULT_STRATEGIES)
        self.max_attempts = max_attempts or settings.resolver_max_attempts
        self.attempt_delay_ms = (
            attempt_delay_ms
            if attempt_delay_ms is not None
            else settings.resolver_attempt_delay_ms
        )
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.resolver_timeout_ms

    def applicable_strategies(self, description: SelectorDescription) -> List[str]:
        """Names of the strategies that have input in ``description``."""
        names = []
        for name, _ in self.strategies:
            field = _STRATEGY_INPUTS.get(name)
            if field is None or getattr(description, field, None):
                names.append(name)
        return names

    async def find_once(self, description: SelectorDescription) -> Optional[Tuple[str, Any]]:
        """
        Run one pass over the strategies.

        A strategy that raises counts as no match for that strategy.

        Returns:
            (strategy name, element) for the first match, or None
        """
        for name, strategy in self.strategies:
            try:
                element = await strategy(self.browser, description)
            except Exception as e:
                logger.debug(
                    "Selector strategy raised, treating as no match",
                    extra={"strategy": name, "error": str(e)},
                )
                continue
            if element is not None:
                return name, element
        return None

    async def resolve(
        self,
        description: SelectorDescription,
        timeout_ms: Optional[int] = None,
    ) -> Resolution:
        """
        Locate the element described by ``description``.

        Args:
            description: Multi-strategy selector description
            timeout_ms: Upper bound on the resolution window, defaults to the
                resolver timeout. The attempt budget still applies.

        Returns:
            Resolution with the element and the winning strategy

        Raises:
            ElementNotFoundError: No strategy matched within the budget
        """
        window_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        loop = asyncio.get_running_loop()
        deadline = loop.time() + window_ms / 1000

        attempt = 0
        while True:
            attempt += 1
            found = await self.find_once(description)
            if found is not None:
                name, element = found
                logger.debug(
                    "Element resolved",
                    extra={"strategy": name, "attempt": attempt},
                )
                return Resolution(element=element, strategy=name, attempts=attempt)

            remaining = deadline - loop.time()
            if attempt >= self.max_attempts or remaining <= 0:
                break
            await asyncio.sleep(min(self.attempt_delay_ms / 1000, remaining))

        selector_json = description.to_json()
        logger.warning(
            "Element not found",
            extra={"selector": selector_json, "attempts": attempt},
        )
        raise ElementNotFoundError(
            selector_json,
            strategies_tried=self.applicable_strategies(description),
            attempts=attempt,
        )

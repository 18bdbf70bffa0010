"""
Tests for multi-strategy element resolution.
"""

import asyncio

import pytest

from edubot.core.types import PositionSelector, SelectorDescription
from edubot.error_handling import ElementNotFoundError
from edubot.resolver import ElementResolver, xpath_literal
from edubot.resolver.strategies import css_string, ordered_stable_attributes


@pytest.fixture
def resolver(fake_browser, settings):
    return ElementResolver(fake_browser, settings=settings)


class TestStrategies:
    """Each strategy queries the browser the way the page expects."""

    @pytest.mark.asyncio
    async def test_primary_wins(self, resolver, fake_browser):
        """Test the primary selector is tried first."""
        primary = fake_browser.add_element("#btnKaydet")
        fake_browser.add_element('[id="btnKaydet"]')

        resolution = await resolver.resolve(SelectorDescription(primary="#btnKaydet", id="btnKaydet"))

        assert resolution.element is primary
        assert resolution.strategy == "primary"
        assert resolution.attempts == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_id(self, resolver, fake_browser):
        """Test a stale primary falls through to the id lookup."""
        element = fake_browser.add_element('[id="btnKaydet"]')

        resolution = await resolver.resolve(SelectorDescription(primary="#old", id="btnKaydet"))

        assert resolution.element is element
        assert resolution.strategy == "id"

    @pytest.mark.asyncio
    async def test_name(self, resolver, fake_browser):
        """Test lookup by name attribute."""
        element = fake_browser.add_element('[name="txtOgrenciNo"]')

        resolution = await resolver.resolve(SelectorDescription(name="txtOgrenciNo"))

        assert resolution.element is element
        assert resolution.strategy == "name"

    @pytest.mark.asyncio
    async def test_stable_attributes_in_order(self, resolver, fake_browser):
        """Test data-* attributes are tried before title."""
        fake_browser.add_element('[title="Kaydet"]', name="title")
        fake_browser.add_element('[data-action="save"]', name="data")

        resolution = await resolver.resolve(SelectorDescription(
            attributes={"title": "Kaydet", "data-action": "save"},
        ))

        assert resolution.element.name == "data"
        assert resolution.strategy == "attributes"

    @pytest.mark.asyncio
    async def test_unstable_attributes_ignored(self, resolver, fake_browser):
        """Test class and style attributes are never queried."""
        fake_browser.add_element('[class="btn"]')

        with pytest.raises(ElementNotFoundError):
            await resolver.resolve(SelectorDescription(attributes={"class": "btn"}))

    @pytest.mark.asyncio
    async def test_xpath_and_css(self, resolver, fake_browser):
        """Test raw XPath and CSS entries."""
        xpath_el = fake_browser.add_element("//table//tr[2]/td[1]")
        css_el = fake_browser.add_element("form .btn-primary")

        by_xpath = await resolver.resolve(SelectorDescription(xpath="//table//tr[2]/td[1]"))
        by_css = await resolver.resolve(SelectorDescription(css="form .btn-primary"))

        assert (by_xpath.element, by_xpath.strategy) == (xpath_el, "xpath")
        assert (by_css.element, by_css.strategy) == (css_el, "css")

    @pytest.mark.asyncio
    async def test_text(self, resolver, fake_browser):
        """Test text lookup builds a contains() XPath."""
        element = fake_browser.add_element('//*[contains(text(), "Notları Kaydet")]')

        resolution = await resolver.resolve(SelectorDescription(text="Notları Kaydet"))

        assert resolution.element is element
        assert resolution.strategy == "text"

    @pytest.mark.asyncio
    async def test_position(self, resolver, fake_browser):
        """Test child index lookup under a parent."""
        element = fake_browser.add_element("unused")
        fake_browser.children[("#menu", 2)] = element

        resolution = await resolver.resolve(
            SelectorDescription(position=PositionSelector(parent="#menu", index=2))
        )

        assert resolution.element is element
        assert resolution.strategy == "position"

    @pytest.mark.asyncio
    async def test_raising_strategy_counts_as_no_match(self, fake_browser, settings):
        """Test an exception inside one strategy does not end resolution."""
        element = fake_browser.add_element("#ok")

        async def broken(browser, description):
            raise RuntimeError("detached frame")

        async def primary(browser, description):
            return await browser.query_selector(description.primary)

        resolver = ElementResolver(
            fake_browser, strategies=[("broken", broken), ("primary", primary)], settings=settings
        )

        resolution = await resolver.resolve(SelectorDescription(primary="#ok"))

        assert resolution.element is element
        assert resolution.strategy == "primary"


class TestRetryLoop:
    """Passes repeat until found, out of attempts or out of time."""

    @pytest.mark.asyncio
    async def test_element_appears_later(self, fake_browser, settings):
        """Test an element rendered after the first pass is found."""
        element = fake_browser.add_element("#late")
        original = fake_browser.query_selector
        calls = []

        async def slow_page(selector):
            calls.append(selector)
            if len(calls) < 3:
                return None
            return await original(selector)

        fake_browser.query_selector = slow_page
        resolver = ElementResolver(fake_browser, max_attempts=5, attempt_delay_ms=0, timeout_ms=1000, settings=settings)

        resolution = await resolver.resolve(SelectorDescription(primary="#late"))

        assert resolution.element is element
        assert resolution.attempts == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, fake_browser, settings):
        """Test the attempt budget bounds the loop."""
        resolver = ElementResolver(fake_browser, max_attempts=3, attempt_delay_ms=0, timeout_ms=5000, settings=settings)

        with pytest.raises(ElementNotFoundError) as exc_info:
            await resolver.resolve(SelectorDescription(id="yok", text="Kaydet"))

        error = exc_info.value
        assert error.attempts == 3
        assert error.strategies_tried == ["id", "text"]
        assert str(error).startswith("Element not found with any strategy: ")
        assert '"id":"yok"' in str(error)

    @pytest.mark.asyncio
    async def test_deadline_ends_loop(self, fake_browser, settings):
        """Test an elapsed time window stops retrying early."""
        resolver = ElementResolver(fake_browser, max_attempts=50, attempt_delay_ms=0, settings=settings)

        with pytest.raises(ElementNotFoundError) as exc_info:
            await resolver.resolve(SelectorDescription(primary="#never"), timeout_ms=0)

        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_attempt_budget_ends_long_window(self, fake_browser, settings):
        """Test a long window does not extend a used-up attempt budget."""
        resolver = ElementResolver(fake_browser, max_attempts=3, attempt_delay_ms=20, settings=settings)
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(ElementNotFoundError) as exc_info:
            await resolver.resolve(SelectorDescription(primary="#late"), timeout_ms=60000)

        assert exc_info.value.attempts == 3
        assert loop.time() - started < 1.0

    def test_defaults_from_settings(self, fake_browser, settings):
        """Test limits come from settings when not passed."""
        resolver = ElementResolver(fake_browser, settings=settings)

        assert resolver.max_attempts == settings.resolver_max_attempts
        assert resolver.attempt_delay_ms == settings.resolver_attempt_delay_ms
        assert resolver.timeout_ms == settings.resolver_timeout_ms


class TestQuoting:
    """Literal quoting helpers."""

    @pytest.mark.parametrize("text, expected", [
        ("Kaydet", '"Kaydet"'),
        ('Say "hi"', "'Say \"hi\"'"),
        ("It's \"ok\"", "concat(\"It's \", '\"', \"ok\", '\"')"),
    ])
    def test_xpath_literal(self, text, expected):
        """Test XPath literals for every quote mix."""
        assert xpath_literal(text) == expected

    def test_css_string(self):
        """Test CSS attribute values are escaped."""
        assert css_string('a"b\\c') == '"a\\"b\\\\c"'

    def test_ordered_stable_attributes(self):
        """Test ordering and filtering of attribute lookups."""
        ordered = ordered_stable_attributes({
            "title": "t",
            "class": "c",
            "aria-label": "a",
            "role": "button",
            "data-id": "d",
            "placeholder": "",
        })

        assert [key for key, _ in ordered] == ["data-id", "aria-label", "role", "title"]

"""
Unit tests for placeholder substitution.
"""

import pytest

from edubot.execution.templates import lookup_variable, substitute


class TestSubstitute:
    """Test ``{{name}}`` rendering."""

    def test_record_values(self):
        """Test placeholders take values from the record."""
        record = {"ad": "Ayşe", "soyad": "Yılmaz"}

        assert substitute("{{ad}} {{ soyad }}", record) == "Ayşe Yılmaz"

    def test_unresolved_placeholder_is_empty(self):
        """Test unknown names render as empty strings."""
        assert substitute("no: {{ogrenci_no}}!", {"ad": "Ali"}) == "no: !"

    @pytest.mark.parametrize("text", [None, ""])
    def test_empty_text(self, text):
        """Test empty templates."""
        assert substitute(text, {"a": 1}) == ""

    def test_text_without_placeholders(self):
        """Test plain text is returned unchanged."""
        assert substitute("Kaydet", {"a": 1}) == "Kaydet"

    @pytest.mark.parametrize("value, expected", [
        (0, "0"),
        (85.5, "85.5"),
        (True, "true"),
        (False, "false"),
        ({"not": "AA"}, '{"not": "AA"}'),
        (["a", "b"], '["a", "b"]'),
    ])
    def test_value_rendering(self, value, expected):
        """Test non-string values."""
        assert substitute("{{v}}", {"v": value}) == expected

    def test_context_takes_precedence(self):
        """Test script results shadow record fields of the same name."""
        assert substitute("{{term}}", {"term": "record"}, {"term": "context"}) == "context"

    def test_none_counts_as_absent(self):
        """Test a None in the context falls back to the record."""
        assert substitute("{{term}}", {"term": "record"}, {"term": None}) == "record"
        assert substitute("{{term}}", {"term": None}) == ""

    def test_substituted_values_are_not_rescanned(self):
        """Test a value that itself looks like a placeholder is kept literally."""
        record = {"a": "{{b}}", "b": "x"}

        assert substitute("{{a}}", record) == "{{b}}"


def test_lookup_variable_without_sources():
    assert lookup_variable("x", None, None) is None

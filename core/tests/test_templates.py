"""Tests for {{placeholder}} extraction and substitution."""

from promptlab.workflow.templates import extract_all, extract_variables, render_template


class TestExtractVariables:
    def test_distinct_names_in_first_seen_order(self):
        assert extract_variables("{{b}} and {{a}} then {{b}} again") == ["b", "a"]

    def test_empty_and_none(self):
        assert extract_variables("") == []
        assert extract_variables(None) == []

    def test_names_keep_inner_whitespace(self):
        assert extract_variables("{{ topic }}") == [" topic "]

    def test_unclosed_placeholder_is_ignored(self):
        assert extract_variables("{{open and {{closed}}") == ["open and {{closed"]

    def test_extract_all_unions_templates(self):
        assert extract_all(["{{a}} {{b}}", None, "{{b}} {{c}}"]) == ["a", "b", "c"]


class TestRenderTemplate:
    def test_replaces_every_occurrence(self):
        assert render_template("{{x}}-{{x}}", {"x": "1"}) == "1-1"

    def test_unresolved_placeholders_stay_verbatim(self):
        assert render_template("Hi {{name}}, {{missing}}", {"name": "Ada"}) == "Hi Ada, {{missing}}"

    def test_values_are_inserted_literally(self):
        rendered = render_template("{{a}} {{b}}", {"a": "{{b}}", "b": r"\1 $x"})
        assert rendered == r"{{b}} \1 $x"

    def test_empty_value_replaces_placeholder(self):
        assert render_template("[{{x}}]", {"x": ""}) == "[]"

    def test_no_values_returns_text_unchanged(self):
        assert render_template("{{x}}", {}) == "{{x}}"

"""Unit tests for TitleTransformer."""
import re

import pytest

from processor.models import LiteralRule, RegexRule
from processor.title_transformer import (
    ELLIPSIS,
    LINE_BREAK,
    TitleTransformer,
    parse_title_replace,
)


@pytest.fixture
def transformer():
    return TitleTransformer()


class TestParseTitleReplace:
    """Test cases for titleReplace parsing."""

    def test_literal_and_regex_needles(self):
        """Test that /body/flags needles become regex rules."""
        rules = parse_title_replace({
            "'s birthday": "",
            "/^meeting/gi": "Mtg",
        })

        assert rules == [
            LiteralRule(text="'s birthday", replacement=""),
            RegexRule(pattern="^meeting", flags="gi", replacement="Mtg"),
        ]

    def test_slash_without_flags_syntax_is_literal(self):
        """Test that a needle merely containing slashes stays literal."""
        rules = parse_title_replace({"a/b": "c"})

        assert rules == [LiteralRule(text="a/b", replacement="c")]

    def test_invalid_regex_raises(self):
        """Test that broken patterns fail at parse time."""
        with pytest.raises(re.error):
            parse_title_replace({"/(unclosed/": ""})


class TestTitleTransformer:
    """Test cases for TitleTransformer class."""

    def test_birthday_suffix_removed(self, transformer):
        """Test the classic birthday replacement."""
        rules = parse_title_replace({"'s birthday": ""})

        assert transformer.transform("Jane's birthday", rules, 100, False, 3) == "Jane"

    def test_literal_replaces_first_occurrence_only(self, transformer):
        """Test literal needles replace a single match."""
        rules = parse_title_replace({"-": "+"})

        assert transformer.transform("a-b-c", rules) == "a+b-c"

    def test_regex_without_global_flag_replaces_once(self, transformer):
        """Test regex rules without g replace the first match."""
        rules = parse_title_replace({"/-/": "+"})

        assert transformer.transform("a-b-c", rules) == "a+b-c"

    def test_regex_global_flag_replaces_all(self, transformer):
        """Test regex rules with g replace every match."""
        rules = parse_title_replace({"/-/g": "+"})

        assert transformer.transform("a-b-c", rules) == "a+b+c"

    def test_regex_ignore_case(self, transformer):
        """Test the i flag."""
        rules = parse_title_replace({"/MEETING/i": "Mtg"})

        assert transformer.transform("Team meeting", rules) == "Team Mtg"

    def test_regex_group_reference(self, transformer):
        """Test $1 style references in the replacement."""
        rules = parse_title_replace({"/^(\\w+)'s birthday$/": "Cake for $1"})

        assert transformer.transform("Jane's birthday", rules) == "Cake for Jane"

    def test_missing_group_reference_stays_literal(self, transformer):
        """Test $N naming a group the pattern lacks is kept as text."""
        rules = parse_title_replace({"/(foo)/": "$2"})

        assert transformer.transform("foo bar", rules, 100, False, 3) == "$2 bar"

    def test_two_digit_reference_falls_back_to_one_digit(self, transformer):
        rules = parse_title_replace({"/(foo)/": "$12"})

        assert transformer.transform("foo bar", rules) == "foo2 bar"

    def test_rules_apply_in_order(self, transformer):
        """Test later rules see the output of earlier ones."""
        rules = parse_title_replace({"foo": "bar", "bar": "baz"})

        assert transformer.transform("foo", rules) == "baz"

    def test_non_string_title_returns_empty(self, transformer):
        """Test that malformed titles never raise."""
        assert transformer.transform(None) == ""
        assert transformer.transform(42, [], 10, False, 3) == ""

    def test_long_title_truncated_with_ellipsis(self, transformer):
        """Test truncation keeps exactly max_length visible characters."""
        result = transformer.transform(
            "A very long event title that should be cut", [], 10, False, 3
        )

        assert result.endswith(ELLIPSIS)
        assert len(result[:-len(ELLIPSIS)]) == 10
        assert result == "A very lon" + ELLIPSIS

    def test_short_title_trimmed(self, transformer):
        """Test short titles are only trimmed."""
        assert transformer.transform("  Lunch  ", [], 100, False, 3) == "Lunch"

    def test_wrap_packs_words_into_lines(self, transformer):
        """Test wrapping splits at the line budget."""
        result = transformer.transform("one two three four five six", [], 10, True, 3)

        assert result.split(LINE_BREAK) == ["one two ", "three four ", "five six"]

    def test_wrap_stops_at_max_lines(self, transformer):
        """Test wrapping ends with an ellipsis after max_lines."""
        result = transformer.transform("one two three four five six", [], 10, True, 2)

        assert result.endswith(ELLIPSIS)
        assert result.count(LINE_BREAK) == 1
        assert "six" not in result

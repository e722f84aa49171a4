"""Unit tests for generation response parsing and prompt construction."""

from __future__ import annotations

import json

import pytest

from rsa_writer.core.schemas import ScrapeResult
from rsa_writer.generation.parser import (
    ParsedCopy,
    ParseFailed,
    find_json_object,
    parse_copy_response,
    strip_code_fence,
)
from rsa_writer.generation.prompt import build_prompt

VALID = '{"headlines": ["Fast kettles", "Boil in 60s"], "descriptions": ["Order today."]}'


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestStripCodeFence:
    def test_plain_fence(self) -> None:
        assert strip_code_fence("```\n{}\n```") == "{}"

    def test_language_tagged_fence(self) -> None:
        assert strip_code_fence("```json\n{\"a\": 1}\n```") == '{"a": 1}'

    def test_unfenced_text_is_only_trimmed(self) -> None:
        assert strip_code_fence("  {}  ") == "{}"


class TestFindJsonObject:
    def test_surrounding_prose(self) -> None:
        assert find_json_object('Here you go: {"a": 1} Enjoy!') == '{"a": 1}'

    def test_nested_objects(self) -> None:
        assert find_json_object('x {"a": {"b": 2}} y') == '{"a": {"b": 2}}'

    def test_braces_inside_strings_are_ignored(self) -> None:
        text = '{"headlines": ["Save {big} now", "Quote \\" }"]} trailing }'
        assert find_json_object(text) == '{"headlines": ["Save {big} now", "Quote \\" }"]}'

    def test_no_object(self) -> None:
        assert find_json_object("no braces here") is None

    def test_unclosed_object(self) -> None:
        assert find_json_object('{"a": 1') is None


# ---------------------------------------------------------------------------
# parse_copy_response
# ---------------------------------------------------------------------------


class TestParseCopyResponse:
    def test_bare_json(self) -> None:
        parsed = parse_copy_response(VALID)
        assert parsed == ParsedCopy(
            headlines=("Fast kettles", "Boil in 60s"), descriptions=("Order today.",)
        )

    def test_fenced_json(self) -> None:
        assert isinstance(parse_copy_response(f"```json\n{VALID}\n```"), ParsedCopy)

    def test_json_with_prose(self) -> None:
        parsed = parse_copy_response(f"Sure! Here is your copy:\n{VALID}\nLet me know.")
        assert isinstance(parsed, ParsedCopy)
        assert parsed.descriptions == ("Order today.",)

    def test_counts_are_truncated(self) -> None:
        text = json.dumps(
            {"headlines": [f"H{i}" for i in range(20)], "descriptions": [f"D{i}" for i in range(6)]}
        )
        parsed = parse_copy_response(text, max_headlines=15, max_descriptions=4)
        assert isinstance(parsed, ParsedCopy)
        assert len(parsed.headlines) == 15
        assert parsed.descriptions == ("D0", "D1", "D2", "D3")

    def test_character_limits_are_not_enforced(self) -> None:
        long_headline = "x" * 80
        parsed = parse_copy_response(json.dumps({"headlines": [long_headline], "descriptions": []}))
        assert isinstance(parsed, ParsedCopy)
        assert parsed.headlines == (long_headline,)

    def test_non_string_and_blank_items_are_dropped(self) -> None:
        text = json.dumps({"headlines": ["  One  ", "", 7, None, "Two"], "descriptions": ["   "]})
        parsed = parse_copy_response(text)
        assert parsed == ParsedCopy(headlines=("One", "Two"), descriptions=())

    def test_to_generated_copy(self) -> None:
        parsed = parse_copy_response(VALID)
        assert isinstance(parsed, ParsedCopy)
        copy = parsed.to_generated_copy()
        assert copy.headlines == ["Fast kettles", "Boil in 60s"]
        assert copy.descriptions == ["Order today."]

    @pytest.mark.parametrize(
        ("text", "reason"),
        [
            (None, "Empty response"),
            ("   ", "Empty response"),
            ("I cannot help with that.", "No JSON object found in response"),
            ('{"headlines": ["a",], }', "Invalid JSON"),
            ('{"headlines": ["a"]}', "Response lacks headlines and descriptions arrays"),
            ('{"headlines": "a", "descriptions": []}', "Response lacks headlines and descriptions arrays"),
            ('{"headlines": [], "descriptions": []}', "No headlines or descriptions"),
            ('{"headlines": ["  ", ""], "descriptions": [null, "\\t"]}', "No headlines or descriptions"),
        ],
    )
    def test_failures_are_returned_not_raised(self, text, reason: str) -> None:
        parsed = parse_copy_response(text)
        assert isinstance(parsed, ParseFailed)
        assert parsed.reason.startswith(reason)


# ---------------------------------------------------------------------------
# build_prompt
# ---------------------------------------------------------------------------


class TestBuildPrompt:
    def _result(self, content: str = "# Kettle\nBoils fast.") -> ScrapeResult:
        return ScrapeResult.ok("https://shop.com/kettle", content, {"title": "Kettle"})

    def test_fills_every_placeholder(self) -> None:
        prompt = build_prompt("https://shop.com/kettle", self._result())

        assert prompt.startswith(
            "Given the following scraped data from the URL https://shop.com/kettle for"
        )
        assert "# Kettle\nBoils fast." in prompt
        assert '"title": "Kettle"' in prompt
        assert "Generate 15 Google Ads headlines (max 30 characters each)" in prompt
        assert "4 descriptions (max 90 characters each)" in prompt
        assert "{URL}" not in prompt
        assert "{CONTENT}" not in prompt

    def test_limits_are_configurable(self) -> None:
        prompt = build_prompt(
            "https://shop.com/kettle",
            self._result(),
            max_headlines=5,
            max_descriptions=2,
            headline_chars=25,
        )
        assert "Generate 5 Google Ads headlines (max 25 characters each)" in prompt
        assert "2 descriptions" in prompt

    def test_placeholder_names_in_content_are_kept_verbatim(self) -> None:
        prompt = build_prompt("https://shop.com/kettle", self._result("Use code {URL} at checkout"))
        assert "Use code {URL} at checkout" in prompt

    def test_output_format_example_is_intact(self) -> None:
        prompt = build_prompt("https://shop.com/kettle", self._result())
        assert '"headlines": ["headline1", "headline2", ...]' in prompt

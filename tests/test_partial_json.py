"""Tests for the partial-JSON field extractor and the final-parse helpers."""
import json

import pytest

from models.stages import FieldDef
from utils.partial_json import (
    clean_json_text,
    extract_field_set,
    extract_fields,
    find_json_object,
    load_json_object,
)


def _schema(**kinds) -> list[FieldDef]:
    return [FieldDef(name=name, kind=kind) for name, kind in kinds.items()]


NAME = _schema(name="string")
PERSONAS = _schema(personas="array")

PROFILE_SCHEMA = _schema(
    name="string", tagline="string", tags="array", geography="object", personas="array",
)

COMPLETE = json.dumps({
    "name": "Acme \"Widgets\"",
    "companyName": "Acme Holdings",
    "tagline": "Line one\nline two — ünïcode",
    "tags": ["a", "b", {"nested": [1, 2]}],
    "geography": {"primaryMarkets": ["UK"], "confidence": "high"},
    "personas": [{"id": "a", "titles": ["CEO [acting]"]}, {"id": "b"}],
})


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

class TestStringFields:
    def test_unterminated_string_is_omitted(self):
        assert extract_fields('{"name": "Ac', NAME) == {}

    def test_terminated_string_is_returned(self):
        assert extract_fields('{"name": "Acme", "tag', NAME) == {"name": "Acme"}

    def test_missing_key_is_omitted(self):
        assert extract_fields('{"tagline": "x"}', NAME) == {}

    def test_escaped_quote_does_not_end_string(self):
        assert extract_fields('{"name": "Say \\"hi', NAME) == {}
        assert extract_fields('{"name": "Say \\"hi\\""', NAME) == {"name": 'Say "hi"'}

    def test_escapes_are_decoded(self):
        assert extract_fields('{"name": "a\\nb\\u00e9"', NAME) == {"name": "a\nbé"}

    def test_escaped_backslash_before_closing_quote(self):
        assert extract_fields('{"name": "C:\\\\"', NAME) == {"name": "C:\\"}

    def test_whitespace_around_colon(self):
        assert extract_fields('{"name" :\n  "Acme"', NAME) == {"name": "Acme"}

    def test_key_inside_longer_key_is_not_matched(self):
        buffer = '{"companyName": "Acme Holdings", "name": "Ac'
        assert extract_fields(buffer, NAME) == {}

    def test_non_string_value_is_omitted(self):
        assert extract_fields('{"name": 42}', NAME) == {}


# ---------------------------------------------------------------------------
# Arrays and objects
# ---------------------------------------------------------------------------

class TestContainerFields:
    def test_partial_array_returns_complete_prefix(self):
        buffer = '{"personas": [{"id":"a"},{"id":"b"'
        assert extract_fields(buffer, PERSONAS) == {"personas": [{"id": "a"}]}

    def test_partial_array_prefix_law(self):
        buffer = '{"personas": [{"a": 1}, {"b": 2}, {"c": '
        assert extract_fields(buffer, PERSONAS) == {"personas": [{"a": 1}, {"b": 2}]}

    def test_partial_array_of_strings_and_numbers(self):
        assert extract_fields('{"personas": ["x", "y", "z', PERSONAS) == {"personas": ["x", "y"]}
        assert extract_fields('{"personas": [1, 2, 3', PERSONAS) == {"personas": [1, 2]}

    def test_array_with_nothing_complete_is_omitted(self):
        assert extract_fields('{"personas": [', PERSONAS) == {}
        assert extract_fields('{"personas": [{"id": "a"', PERSONAS) == {}

    def test_closed_empty_array_is_returned(self):
        assert extract_fields('{"personas": []', PERSONAS) == {"personas": []}

    def test_brackets_inside_strings_do_not_count(self):
        buffer = '{"personas": [{"title": "CEO ]"}, {"title": "[CTO"}]}'
        assert extract_fields(buffer, PERSONAS) == {
            "personas": [{"title": "CEO ]"}, {"title": "[CTO"}],
        }

    def test_closed_but_invalid_span_is_omitted(self):
        assert extract_fields('{"personas": [1, 2,]}', PERSONAS) == {}

    def test_incomplete_object_is_omitted(self):
        schema = _schema(geography="object")
        assert extract_fields('{"geography": {"primaryMarkets": ["UK"]', schema) == {}

    def test_complete_object_is_returned(self):
        schema = _schema(geography="object")
        buffer = '{"geography": {"primaryMarkets": ["UK"]}, "other'
        assert extract_fields(buffer, schema) == {"geography": {"primaryMarkets": ["UK"]}}

    def test_wrong_opener_is_omitted(self):
        assert extract_fields('{"personas": "none"}', PERSONAS) == {}


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

class TestExtractionProperties:
    def test_complete_text_equals_full_parse_restricted_to_schema(self):
        parsed = json.loads(COMPLETE)
        expected = {f.name: parsed[f.name] for f in PROFILE_SCHEMA}
        assert extract_fields(COMPLETE, PROFILE_SCHEMA) == expected

    def test_repeated_calls_are_equal(self):
        buffer = COMPLETE[: len(COMPLETE) // 2]
        assert extract_fields(buffer, PROFILE_SCHEMA) == extract_fields(buffer, PROFILE_SCHEMA)

    def test_string_field_grows_monotonically(self):
        lengths = []
        for end in range(len(COMPLETE) + 1):
            value = extract_fields(COMPLETE[:end], PROFILE_SCHEMA).get("tagline")
            if value is not None:
                lengths.append(len(value))
        assert lengths
        assert lengths == sorted(lengths)

    def test_array_prefix_never_shrinks(self):
        sizes = []
        for end in range(len(COMPLETE) + 1):
            value = extract_fields(COMPLETE[:end], PROFILE_SCHEMA).get("personas")
            if value is not None:
                sizes.append(len(value))
        assert sizes == sorted(sizes)
        assert sizes[-1] == 2

    def test_field_set_counts(self):
        result = extract_field_set('{"name": "Acme", "personas": [{"id": "a"},', PROFILE_SCHEMA, token_count=9)
        assert result.fields == {"name": "Acme", "personas": [{"id": "a"}]}
        assert result.field_count == 2
        assert result.token_count == 9
        assert result.is_final is False


# ---------------------------------------------------------------------------
# Final parse helpers
# ---------------------------------------------------------------------------

class TestFinalParseHelpers:
    def test_find_first_balanced_object(self):
        text = 'Sure! {"a": {"b": "}"}} and then {"c": 1}'
        assert find_json_object(text) == '{"a": {"b": "}"}}'

    def test_find_returns_none_without_object(self):
        assert find_json_object("no json here") is None
        assert find_json_object('{"a": 1') is None

    def test_clean_strips_trailing_commas(self):
        assert clean_json_text('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'

    def test_clean_strips_control_chars_but_keeps_whitespace(self):
        assert clean_json_text('{"a":\x00 1,\n\t"b"\x1f: 2}\r') == '{"a": 1,\n\t"b": 2}\r'

    def test_load_parses_fenced_reply(self):
        text = 'Here you go:\n```json\n{"name": "Acme", "tags": ["x",],}\n```'
        assert load_json_object(text) == {"name": "Acme", "tags": ["x"]}

    @pytest.mark.parametrize("text", ["", "plain text", '{"name": "Acme"', "{not json}"])
    def test_load_returns_none_for_unusable_text(self, text):
        assert load_json_object(text) is None

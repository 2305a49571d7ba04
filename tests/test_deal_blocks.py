"""
Tests for deal block parsing, the acreage filter and JSON array extraction.
"""

import json

import pytest

from deal_blocks import (
    CLOSE,
    OPEN,
    POLICY_DROP,
    UNKNOWN_DROP,
    DealSegment,
    FilterPolicy,
    TextSegment,
    extract_acreage,
    extract_deal_array,
    filter_deal_text,
    filter_deals,
    filter_segments,
    parse_deal,
    parse_segments,
)
from exceptions import ParseError
from models import DealRecord


def block(**fields) -> str:
    return f"{OPEN}\n{json.dumps(fields)}\n{CLOSE}"


LAND = FilterPolicy(land_context=True)
LAND_DROP = FilterPolicy(land_context=True, below_minimum=POLICY_DROP)


class TestParseSegments:

    def test_malformed_block_degrades_to_literal_text(self):
        segments = parse_segments("before <<<DEAL>>>{bad json<<<END_DEAL>>> after")

        assert all(isinstance(s, TextSegment) for s in segments)
        assert [s.text for s in segments] == ["before", "<<<DEAL>>>{bad json<<<END_DEAL>>>", "after"]

    def test_well_formed_block(self):
        raw = "Found one:\n" + block(address="1 Main St", details="3 acres") + "\nThat's all."
        segments = parse_segments(raw)

        assert [type(s) for s in segments] == [TextSegment, DealSegment, TextSegment]
        assert segments[1].deal.address == "1 Main St"
        assert segments[0].text == "Found one:"

    def test_raw_reconstructs_input_exactly(self):
        raw = (
            "Here are the deals:\n"
            + block(address="1 Main St", details="3 acres - R-3")
            + "\nand another one\n"
            + block(address="2 Oak Ave", details="5 acres - C-2")
            + "\nDone."
        )
        assert "".join(s.raw for s in parse_segments(raw)) == raw

    def test_malformed_block_keeps_delimiters(self):
        raw = "intro " + OPEN + "{not: json" + CLOSE + " outro"
        assert "".join(s.raw for s in parse_segments(raw)) == raw

    def test_non_object_json_is_text(self):
        segments = parse_segments(OPEN + "[1, 2]" + CLOSE)
        assert segments == [TextSegment(text=OPEN + "[1, 2]" + CLOSE)]

    def test_unclosed_open_delimiter_becomes_text(self):
        raw = "lead " + OPEN + '{"address": "1 Main St"}'
        segments = parse_segments(raw)
        assert [s.text for s in segments] == ["lead", OPEN + '{"address": "1 Main St"}']

    def test_whitespace_only_text_dropped(self):
        raw = block(address="A", details="3 acres") + "\n\n" + block(address="B", details="4 acres")
        segments = parse_segments(raw)
        assert [type(s) for s in segments] == [DealSegment, DealSegment]

    def test_empty_input(self):
        assert parse_segments("") == []

    def test_parse_deal_raises_parse_error(self):
        with pytest.raises(ParseError):
            parse_deal("{broken")


class TestExtractAcreage:

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1.5 acres - R-3 zoning", 1.5),
            ("2.0 acres ...", 2.0),
            ("Approx. 1,200 acres of ranch land", 1200.0),
            ("2-acre infill lot", 2.0),
            ("Parcel: .75 acre", 0.75),
            ("10 ACRES, road frontage", 10.0),
        ],
    )
    def test_parses_figure(self, text, expected):
        assert extract_acreage(text) == expected

    @pytest.mark.parametrize("text", ["corner lot ...", "5 ac near highway", "", "acres of potential"])
    def test_unknown(self, text):
        assert extract_acreage(text) is None


class TestFilterSegments:

    def _segments(self, *details):
        return parse_segments("\n".join(block(address=f"{i} Elm St", details=d) for i, d in enumerate(details)))

    def test_under_minimum_is_annotated(self):
        filtered = filter_segments(self._segments("1.5 acres - R-3"), LAND)

        assert len(filtered) == 1
        assert isinstance(filtered[0], TextSegment)
        assert filtered[0].text == "*[Skipped: 0 Elm St - 1.5 acres is below the 2-acre minimum]*"

    def test_under_minimum_is_dropped(self):
        assert filter_segments(self._segments("1.5 acres - R-3"), LAND_DROP) == []

    def test_at_minimum_is_kept(self):
        segments = self._segments("2.0 acres - R-4")
        assert filter_segments(segments, LAND) == segments

    def test_unknown_acreage_is_kept_by_default(self):
        segments = self._segments("corner lot with frontage")
        assert filter_segments(segments, LAND) == segments

    def test_unknown_acreage_drop_policy(self):
        policy = FilterPolicy(land_context=True, unknown_acreage=UNKNOWN_DROP)
        assert filter_segments(self._segments("corner lot"), policy) == []

    def test_outside_land_context_nothing_changes(self):
        segments = self._segments("0.1 acres")
        assert filter_segments(segments, FilterPolicy()) == segments

    def test_custom_minimum(self):
        policy = FilterPolicy(land_context=True, min_acres=5.0, below_minimum=POLICY_DROP)
        filtered = filter_segments(self._segments("3 acres", "6 acres"), policy)
        assert [s.deal.details for s in filtered] == ["6 acres"]

    @pytest.mark.parametrize("policy", [LAND, LAND_DROP, FilterPolicy(land_context=True, unknown_acreage=UNKNOWN_DROP)])
    def test_idempotent(self, policy):
        segments = self._segments("1.5 acres", "2.0 acres", "corner lot", "12 acres")
        once = filter_segments(segments, policy)
        assert filter_segments(once, policy) == once


class TestFilterDealText:

    def test_annotates_in_rendered_text(self):
        text = "Results:\n" + block(address="9 Pine Rd", details="1.5 acres - vacant") + "\n" + block(
            address="10 Pine Rd", details="2.5 acres - vacant"
        )
        filtered = filter_deal_text(text, LAND)

        assert "*[Skipped: 9 Pine Rd - 1.5 acres is below the 2-acre minimum]*" in filtered
        assert '"10 Pine Rd"' in filtered
        assert '"9 Pine Rd"' not in filtered
        assert filtered.startswith("Results:")

    def test_untouched_when_nothing_filtered(self):
        text = "Intro\n\n\n" + block(address="1 Main St", details="4 acres")
        assert filter_deal_text(text, LAND) is text

    def test_idempotent_on_text(self):
        text = "A\n" + block(address="1 Main St", details="1 acre") + "\nB\n" + block(address="2 Main St", details="3 acres")
        once = filter_deal_text(text, LAND)
        assert filter_deal_text(once, LAND) == once


class TestExtractDealArray:

    def test_array_inside_prose(self):
        text = 'Here you go:\n```json\n[{"address": "1 Main St", "details": "see [note]"}]\n```\nLet me know.'
        deals = extract_deal_array(text)
        assert [d.address for d in deals] == ["1 Main St"]
        assert deals[0].details == "see [note]"

    def test_non_objects_skipped(self):
        deals = extract_deal_array('[1, "x", null, {"address": "2 Oak Ave"}]')
        assert [d.address for d in deals] == ["2 Oak Ave"]

    def test_empty_array(self):
        assert extract_deal_array("No qualifying deals. []") == []

    def test_no_array(self):
        assert extract_deal_array("I could not find any listings.") is None

    def test_truncated_array_is_not_mistaken_for_nested_one(self):
        text = '[{"address": "1 Main St", "financials": [{"label": "Asking", "value": "$1"}]}, {"address": "2'
        assert extract_deal_array(text) is None

    def test_skips_bracketed_prose_before_array(self):
        text = 'Sources [1] and [2]:\n[{"address": "3 Elm St"}]'
        assert [d.address for d in extract_deal_array(text)] == ["3 Elm St"]

    def test_unclosed_bracket_in_prose_does_not_hide_array(self):
        text = 'Results [see notes below:\n[{"address": "1 Main St", "details": "3 acres"}]'
        assert [d.address for d in extract_deal_array(text)] == ["1 Main St"]

    def test_stray_quote_in_earlier_brackets_does_not_hide_array(self):
        text = 'Parcel [5" frontage] info: [{"address": "1 Main St"}]'
        assert [d.address for d in extract_deal_array(text)] == ["1 Main St"]

    def test_array_of_non_deal_objects_is_not_a_payload(self):
        text = 'Comps: [{"label": "ARV", "value": "$310k"}]\nNo qualifying deals.'
        assert extract_deal_array(text) is None


class TestFilterDeals:

    def test_always_drops_under_minimum(self):
        deals = [
            DealRecord(address="a", details="1.5 acres"),
            DealRecord(address="b", details="2.0 acres"),
            DealRecord(address="c", details="corner lot"),
        ]
        kept = filter_deals(deals, LAND)
        assert [d.address for d in kept] == ["b", "c"]

    def test_non_land_untouched(self):
        deals = [DealRecord(address="a", details="0.2 acres")]
        assert filter_deals(deals, FilterPolicy()) == deals

"""
Deal Block Parser & Filter
Splits model output into text and <<<DEAL>>> segments, validates each block as
a DealRecord, and enforces the minimum-acreage rule for land searches.
Everything here is pure: no I/O, no state.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from exceptions import ParseError
from models import DealRecord

logger = logging.getLogger(__name__)

OPEN = "<<<DEAL>>>"
CLOSE = "<<<END_DEAL>>>"

POLICY_ANNOTATE = "annotate"
POLICY_DROP = "drop"
UNKNOWN_KEEP = "keep"
UNKNOWN_DROP = "drop"

# "2.5 acres", "2-acre", "1,200 acres"; a bare "ac" abbreviation is not accepted
_ACREAGE_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?|\.\d+)\s*-?\s*acres?\b", re.IGNORECASE)


@dataclass(frozen=True)
class TextSegment:
    text: str
    raw: str = ""

    def __post_init__(self):
        if not self.raw:
            object.__setattr__(self, "raw", self.text)


@dataclass(frozen=True)
class DealSegment:
    deal: DealRecord
    raw: str


Segment = Union[TextSegment, DealSegment]


@dataclass(frozen=True)
class FilterPolicy:
    """How deal segments are screened before they reach the caller."""
    land_context: bool = False
    min_acres: float = 2.0
    below_minimum: str = POLICY_ANNOTATE
    unknown_acreage: str = UNKNOWN_KEEP


# ======================================================================
# Acreage
# ======================================================================

def extract_acreage(text: str) -> Optional[float]:
    """
    Best-effort acreage from free text. Returns the first "<number> acre(s)"
    figure, or None when no figure can be found ("unknown", never 0).
    """
    if not text:
        return None
    match = _ACREAGE_RE.search(text)
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def _format_acres(acres: float) -> str:
    return f"{acres:g}"


# ======================================================================
# Parsing
# ======================================================================

def parse_deal(body: str) -> DealRecord:
    """Decode one block body. Raises ParseError for anything that isn't a valid deal object."""
    try:
        data = json.loads(body.strip())
    except (json.JSONDecodeError, ValueError) as e:
        raise ParseError(f"Deal block is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"Deal block is a {type(data).__name__}, expected an object")
    try:
        return DealRecord.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Deal block failed validation: {e.error_count()} error(s)") from e


def _text(raw: str) -> Optional[TextSegment]:
    if not raw.strip():
        return None
    return TextSegment(text=raw.strip(), raw=raw)


def parse_segments(raw: str) -> List[Segment]:
    """
    Text outside delimiters becomes TextSegment (whitespace-only dropped); a block
    becomes DealSegment, or the literal block as text when its JSON is malformed.
    An opening delimiter with no close turns the rest of the input into text.
    """
    segments: List[Segment] = []
    remaining = raw or ""

    while remaining:
        open_idx = remaining.find(OPEN)
        if open_idx == -1:
            seg = _text(remaining)
            if seg:
                segments.append(seg)
            break

        seg = _text(remaining[:open_idx])
        if seg:
            segments.append(seg)

        after_open = remaining[open_idx + len(OPEN):]
        close_idx = after_open.find(CLOSE)
        if close_idx == -1:
            seg = _text(remaining[open_idx:])
            if seg:
                segments.append(seg)
            break

        body = after_open[:close_idx]
        block = OPEN + body + CLOSE
        try:
            segments.append(DealSegment(deal=parse_deal(body), raw=block))
        except ParseError as e:
            logger.warning(f"{e} - keeping block as text")
            segments.append(TextSegment(text=block, raw=block))

        remaining = after_open[close_idx + len(CLOSE):]

    return segments


# ======================================================================
# Filtering
# ======================================================================

def skipped_note(deal: DealRecord, acres: float, min_acres: float) -> str:
    return (
        f"*[Skipped: {deal.address or 'unnamed parcel'} - {_format_acres(acres)} acres "
        f"is below the {_format_acres(min_acres)}-acre minimum]*"
    )


def filter_segments(segments: List[Segment], policy: FilterPolicy) -> List[Segment]:
    """
    Apply the land acreage floor. Outside land context segments pass unchanged.
    Idempotent: notes are text, and kept deals stay kept.
    """
    if not policy.land_context:
        return list(segments)

    result: List[Segment] = []
    for seg in segments:
        if not isinstance(seg, DealSegment):
            result.append(seg)
            continue

        acres = extract_acreage(seg.deal.details)
        if acres is None:
            if policy.unknown_acreage == UNKNOWN_DROP:
                logger.info(f"Dropped deal with unknown acreage: {seg.deal.address}")
                continue
            result.append(seg)
            continue

        if acres >= policy.min_acres:
            result.append(seg)
            continue

        logger.info(f"Filtered {seg.deal.address}: {acres} acres < {policy.min_acres}")
        if policy.below_minimum == POLICY_ANNOTATE:
            result.append(TextSegment(text=skipped_note(seg.deal, acres, policy.min_acres)))

    return result


def filter_deals(deals: List[DealRecord], policy: FilterPolicy) -> List[DealRecord]:
    """List form of the acreage floor for the scan endpoint (always drops)."""
    drop_policy = FilterPolicy(
        land_context=policy.land_context,
        min_acres=policy.min_acres,
        below_minimum=POLICY_DROP,
        unknown_acreage=policy.unknown_acreage,
    )
    segments = [DealSegment(deal=deal, raw="") for deal in deals]
    return [seg.deal for seg in filter_segments(segments, drop_policy)]


def render_segments(segments: List[Segment]) -> str:
    """Join segments back into chat text; deal blocks keep their original source."""
    return "\n\n".join(seg.raw.strip() if isinstance(seg, TextSegment) else seg.raw for seg in segments)


def filter_deal_text(text: str, policy: FilterPolicy) -> str:
    """parse -> filter -> render. Returns the input untouched when nothing changes."""
    if not policy.land_context or OPEN not in (text or ""):
        return text
    segments = parse_segments(text)
    filtered = filter_segments(segments, policy)
    if filtered == segments:
        return text
    return render_segments(filtered)


# ======================================================================
# JSON array extraction (scan output)
# ======================================================================

def _balanced_array_end(text: str, start: int) -> int:
    """Index just past the ']' closing the '[' at `start`, or -1. String-aware."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def _is_deal_array(value: List[Any]) -> bool:
    return any(isinstance(item, dict) and "address" in item for item in value)


def extract_json_array(text: str) -> Optional[List[Any]]:
    """
    First balanced [...] in the text that decodes as a JSON array of deal objects.
    Stray brackets and quotes in surrounding prose are skipped over. Nested
    arrays of other objects (e.g. financials) never count as deals. Falls back to
    the first decodable array holding no objects, so "[]" means "no deals".
    """
    if not text:
        return None
    fallback: Optional[List[Any]] = None
    start = text.find("[")
    while start != -1:
        end = _balanced_array_end(text, start)
        if end == -1:
            start = text.find("[", start + 1)
            continue
        try:
            value = json.loads(text[start:end])
        except (json.JSONDecodeError, ValueError):
            value = None
        if isinstance(value, list):
            if _is_deal_array(value):
                return value
            if fallback is None and not any(isinstance(item, dict) for item in value):
                fallback = value
        # Undecodable spans may still contain the payload
        start = text.find("[", start + 1 if value is None else end)
    return fallback


def extract_deal_array(text: str) -> Optional[List[DealRecord]]:
    """
    Deals from the first JSON array in the text. Elements that are not objects
    or fail validation are skipped. None means no array was found at all.
    """
    items = extract_json_array(text)
    if items is None:
        return None

    deals: List[DealRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            deals.append(DealRecord.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping scan deal that failed validation: {e.error_count()} error(s)")
    return deals


def deals_to_payload(deals: List[DealRecord]) -> List[Dict[str, Any]]:
    return [deal.to_payload() for deal in deals]

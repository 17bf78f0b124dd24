"""
Exchange segment normalization.

Maps between the canonical segment strings used in subscription requests and
the numeric codes carried in binary packet headers. Lookups never raise on
unknown input; they degrade to a best-effort string.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Iterable, Union

from dhanfeed.live.errors import SubscriptionError
from dhanfeed.live.types import Instrument

logger = logging.getLogger(__name__)


class ExchangeSegment(str, Enum):
    """Known exchange segments."""

    IDX_I = "IDX_I"
    NSE_EQ = "NSE_EQ"
    NSE_FNO = "NSE_FNO"
    NSE_CURRENCY = "NSE_CURRENCY"
    BSE_EQ = "BSE_EQ"
    MCX_COMM = "MCX_COMM"
    BSE_CURRENCY = "BSE_CURRENCY"
    BSE_FNO = "BSE_FNO"

    @property
    def code(self) -> int:
        return SEGMENT_CODES[self.value]


SEGMENT_CODES: dict[str, int] = {
    "IDX_I": 0,
    "NSE_EQ": 1,
    "NSE_FNO": 2,
    "NSE_CURRENCY": 3,
    "BSE_EQ": 4,
    "MCX_COMM": 5,
    "BSE_CURRENCY": 7,
    "BSE_FNO": 8,
}

CODE_TO_SEGMENT: dict[int, str] = {code: name for name, code in SEGMENT_CODES.items()}

SegmentLike = Union[ExchangeSegment, str, int]


def to_request_string(value: SegmentLike) -> str:
    """
    Normalize any segment representation to its canonical request string.

    Accepts enum members, canonical names in any case, integer codes and
    digit strings. Unknown values come back uppercased.
    """
    if isinstance(value, ExchangeSegment):
        return value.value
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, int):
        return CODE_TO_SEGMENT.get(value, str(value))

    text = str(value).strip()
    if text.isdigit():
        return CODE_TO_SEGMENT.get(int(text), text)
    return text.upper()


def from_code(code: int) -> str:
    """Resolve a header segment byte to its name, or its decimal string if unknown."""
    return CODE_TO_SEGMENT.get(code, str(code))


def to_code(value: SegmentLike) -> int:
    """Numeric code for a segment; raises KeyError for unknown segments."""
    return SEGMENT_CODES[to_request_string(value)]


_SEGMENT_KEYS = ("ExchangeSegment", "exchange_segment", "segment")
_SECURITY_KEYS = ("SecurityId", "security_id", "securityId")


def _first(obj: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
    return None


def normalize_instrument(obj: Any) -> Instrument:
    """
    Coerce one instrument description into an Instrument.

    Accepted shapes:
        Instrument(...)
        {"ExchangeSegment": "NSE_EQ", "SecurityId": "1333"}
        {"exchange_segment": 1, "security_id": 1333}
        ("NSE_EQ", 1333)

    Extra fields are dropped.

    Raises:
        SubscriptionError: If the segment or security id cannot be found
    """
    if isinstance(obj, Instrument):
        segment, security_id = obj.exchange_segment, obj.security_id
    elif isinstance(obj, Mapping):
        segment = _first(obj, _SEGMENT_KEYS)
        security_id = _first(obj, _SECURITY_KEYS)
    elif isinstance(obj, (tuple, list)) and len(obj) == 2:
        segment, security_id = obj
    else:
        raise SubscriptionError(
            f"Unrecognized instrument: {obj!r}",
            component="segments",
        )

    if segment is None or security_id is None or str(security_id).strip() == "":
        raise SubscriptionError(
            f"Instrument needs a segment and security id: {obj!r}",
            component="segments",
        )
    return Instrument(to_request_string(segment), str(security_id).strip())


def normalize_instruments(items: Iterable[Any]) -> list[Instrument]:
    """Normalize a sequence of instrument descriptions, skipping malformed entries."""
    out: list[Instrument] = []
    for item in items:
        try:
            out.append(normalize_instrument(item))
        except SubscriptionError as e:
            logger.warning(f"Skipping instrument: {e}")
    return out

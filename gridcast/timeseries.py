"""
Time-Series Decoder for gridcast

weather.gov grid properties describe every quantity as a list of
{"validTime": "<instant>/<duration>", "value": ...} records, e.g.

    {"validTime": "2024-12-17T18:00:00+00:00/PT3H", "value": 4.4}

This module turns those records into typed points and answers the two
questions the aggregator asks of them: "what is the value at this instant?"
and "which values touch this local calendar day?".

Day boundaries are always computed in the forecast location's time zone.
Bucketing by UTC day would push U.S. evening values into tomorrow.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000
MS_PER_DAY = 86_400_000

DEFAULT_DURATION_MS = MS_PER_HOUR

UNIT_MS = {"M": MS_PER_MINUTE, "H": MS_PER_HOUR, "D": MS_PER_DAY}

# "PT3H", "P1D", "pt30m"
SIMPLE_DURATION = re.compile(r"^PT?(\d+)([HMD])$", re.IGNORECASE)
# "P1DT6H", "P2DT12H30M"
COMPOSITE_DURATION = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?)?$", re.IGNORECASE)

# Series whose values are precipitation/snow amounts
AMOUNT_SERIES = ("quantitativePrecipitation", "snowfallAmount", "iceAccumulation")
# Series whose values are lists of coded weather entries rather than numbers
CODED_SERIES = ("weather",)


@dataclass(frozen=True)
class TimeSeriesPoint:
    """A value valid over the half-open interval [start, start + duration)."""
    start: datetime
    duration_ms: int
    value: Any

    @property
    def end(self) -> datetime:
        return self.start + timedelta(milliseconds=self.duration_ms)

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def overlaps(self, window_start: datetime, window_end: datetime) -> bool:
        return self.start < window_end and self.end > window_start


def parse_instant(raw: str) -> datetime:
    """
    Parse an ISO 8601 instant into an aware datetime (naive means UTC).

    Raises:
        ValueError: raw is not an ISO 8601 string
    """
    if not isinstance(raw, str):
        raise ValueError(f"Expected an ISO 8601 string, got {raw!r}")
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_duration_ms(raw: Optional[str]) -> int:
    """
    Parse the duration half of a validTime.

    Accepts an optional P/PT prefix, an integer and a unit in {H, M, D}
    (M is minutes). Composite durations like P1DT6H are summed.
    Anything unrecognized is one hour.
    """
    if not raw:
        return DEFAULT_DURATION_MS

    text = raw.strip()

    match = SIMPLE_DURATION.match(text)
    if match:
        return int(match.group(1)) * UNIT_MS[match.group(2).upper()]

    match = COMPOSITE_DURATION.match(text)
    if match and any(match.groups()):
        days, hours, minutes = (int(g) if g else 0 for g in match.groups())
        return days * MS_PER_DAY + hours * MS_PER_HOUR + minutes * MS_PER_MINUTE

    logger.debug(f"[parse_duration_ms] Unrecognized duration {raw!r}, defaulting to 1h")
    return DEFAULT_DURATION_MS


def parse_valid_time(raw: str) -> Tuple[datetime, int]:
    """Decode "<instant>/<duration>" into (start, duration_ms)."""
    if not isinstance(raw, str):
        raise ValueError(f"Expected a validTime string, got {raw!r}")
    instant, _, duration = raw.partition("/")
    return parse_instant(instant), parse_duration_ms(duration)


def coerce_amount(value: Any) -> Optional[float]:
    """
    Normalize a precipitation amount to a single optional float.

    Amounts arrive either as a bare number or as an object keyed by
    accumulation window ({"1h": 0.3}); only the first window is used.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        for inner in value.values():
            return coerce_amount(inner)
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(amount) else amount


def _fahrenheit_to_celsius(value: float) -> float:
    return (value - 32) * 5 / 9


def _ms_to_kmh(value: float) -> float:
    return value * 3.6


def _knots_to_kmh(value: float) -> float:
    return value * 1.852


# Grid series are expected in degC and km_h-1; anything else is converted here
UNIT_NORMALIZERS = {
    "wmoUnit:degF": _fahrenheit_to_celsius,
    "wmoUnit:m_s-1": _ms_to_kmh,
    "wmoUnit:kt": _knots_to_kmh,
}


def _scalar(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return None if math.isnan(value) else value


def decode_series(raw_series: Optional[Dict[str, Any]], name: str = "") -> List[TimeSeriesPoint]:
    """
    Decode a grid-properties series into ascending TimeSeriesPoints.

    Args:
        raw_series: {"uom": ..., "values": [{"validTime": ..., "value": ...}]}
        name: property name, used to pick amount coercion

    Returns:
        List of points; empty when the series is absent or malformed.
    """
    if not raw_series or not isinstance(raw_series, dict):
        return []

    values = raw_series.get("values")
    if not isinstance(values, list):
        return []

    uom = raw_series.get("uom")
    normalizer = UNIT_NORMALIZERS.get(uom) if isinstance(uom, str) else None
    is_amount = name in AMOUNT_SERIES
    is_coded = name in CODED_SERIES

    points: List[TimeSeriesPoint] = []
    for item in values:
        try:
            start, duration_ms = parse_valid_time(item["validTime"])
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"[decode_series] Skipping malformed {name} entry: {e}")
            continue

        value = item.get("value")
        if is_amount:
            value = coerce_amount(value)
        elif not is_coded:
            value = _scalar(value)
            if value is not None and normalizer is not None:
                value = normalizer(value)

        points.append(TimeSeriesPoint(start=start, duration_ms=duration_ms, value=value))

    points.sort(key=lambda p: p.start)
    return points


def point_at(series: Optional[List[TimeSeriesPoint]], instant: datetime) -> Optional[TimeSeriesPoint]:
    """The point whose interval contains `instant`, if any."""
    for point in series or []:
        if point.contains(instant):
            return point
    return None


def value_at(
    series: Optional[List[TimeSeriesPoint]],
    instant: datetime,
    fallback_to_first: bool = True
) -> Any:
    """
    Value whose interval contains `instant`.

    Falls back to the first point's value (the source series may not start
    exactly at "now") unless `fallback_to_first` is False.
    """
    if not series:
        return None

    point = point_at(series, instant)
    if point is not None:
        return point.value

    return series[0].value if fallback_to_first else None


def values_overlapping_day(
    series: Optional[List[TimeSeriesPoint]],
    day_start: datetime,
    day_end: datetime,
    future_only: bool = False,
    now: Optional[datetime] = None
) -> List[Any]:
    """
    Values of every point overlapping [day_start, day_end).

    With `future_only`, points that have fully elapsed before `now` are
    dropped so today's aggregates cover only the rest of the day.
    """
    if not series:
        return []

    if future_only and now is None:
        now = datetime.now(timezone.utc)

    values = []
    for point in series:
        if not point.overlaps(day_start, day_end):
            continue
        if future_only and point.end <= now:
            continue
        values.append(point.value)
    return values


def local_day_bounds(base: datetime, day_offset: int, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """Start and end of the local civil day `day_offset` days after `base`."""
    local_date = base.astimezone(tz).date() + timedelta(days=day_offset)
    return local_midnight(local_date, tz), local_midnight(local_date + timedelta(days=1), tz)


def local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def local_date_key(base: datetime, day_offset: int, tz: ZoneInfo) -> str:
    """YYYY-MM-DD of the local day `day_offset` days after `base`."""
    return (base.astimezone(tz).date() + timedelta(days=day_offset)).isoformat()

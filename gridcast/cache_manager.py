"""
Revision Cache for gridcast

Keeps a small per-day record of forecast extremes across polls so today's
high/low never silently shrinks.

weather.gov narrows "today" as the day goes on. At 7 AM the day-0 max
wind covers 17 remaining hours; at 5 PM it covers 7. Re-aggregating each
poll would forget the gusty morning. The cache remembers it.

Merge rules:
- Day 0 (today):    elementwise max (min for low temp) of cached and new
- Days 1-6 (future): new value wins, cached value fills gaps
- Location change:  whole cache discarded
- At most 7 entries, none dated before today - 7

Persisted as one JSON document:
    {
        "version": 1,
        "location": "40.00,-75.00",
        "units": "imperial",
        "days": {"2025-12-20": {"max_temp": 51, ...}}
    }
"""

import json
import logging
import math
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from gridcast.resilience import CacheCorruptionError, PersistError
from gridcast.timeseries import coerce_amount, local_date_key

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
DEFAULT_CACHE_FILE = Path("outputs/cache/revision_cache.json")


@dataclass
class DailyCacheEntry:
    """Best-known extremes for one local calendar day."""
    max_temp: Optional[float] = None
    min_temp: Optional[float] = None
    max_wind: Optional[float] = None
    max_gust: Optional[float] = None
    max_pop: Optional[float] = None
    total_rain: Optional[float] = None
    total_snow: Optional[float] = None
    max_uvi: Optional[float] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DailyCacheEntry":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in raw.items():
            if key not in known:
                continue
            values[key] = value if key == "last_updated" else _number(value)
        return cls(**values)

    @classmethod
    def from_daily(cls, day: Dict[str, Any]) -> "DailyCacheEntry":
        """Extract the tracked fields from one daily forecast entry."""
        temp = day.get("temp") or {}
        return cls(
            max_temp=_number(temp.get("max")),
            min_temp=_number(temp.get("min")),
            max_wind=_number(day.get("wind_speed")),
            max_gust=_number(day.get("wind_gust")),
            max_pop=_number(day.get("pop")),
            total_rain=coerce_amount(day.get("rain")),
            total_snow=coerce_amount(day.get("snow")),
            max_uvi=_number(day.get("uvi")),
        )


def _number(value: Any) -> Optional[float]:
    """A finite-or-None number; NaN and non-numbers become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else value
    return None


def _missing(value: Any) -> bool:
    return _number(value) is None


def merge_extreme(cached: Any, new: Any, pick=max) -> Optional[float]:
    """max/min of two values where a missing side defers to the other."""
    if _missing(cached):
        return None if _missing(new) else new
    if _missing(new):
        return cached
    return pick(cached, new)


def merge_fresh(cached: Any, new: Any) -> Optional[float]:
    """The new value when present, else the cached one."""
    if not _missing(new):
        return new
    return None if _missing(cached) else cached


def location_key(latitude: float, longitude: float) -> str:
    return f"{float(latitude):.2f},{float(longitude):.2f}"


# Tracked fields and the merge rule used for day 0
TODAY_RULES = {
    "max_temp": max,
    "min_temp": min,
    "max_wind": max,
    "max_gust": max,
    "max_pop": max,
    "total_rain": max,
    "total_snow": max,
    "max_uvi": max,
}


class RevisionCache:
    """
    Disk-backed per-day extremes store.

    Read once at poll start (load), merged once (merge), pruned and
    written once at poll end (save).
    """

    MAX_HISTORY_DAYS = 7
    MAX_ENTRIES = 7

    def __init__(self, cache_path: Optional[Path] = None):
        self.cache_path = Path(cache_path) if cache_path else DEFAULT_CACHE_FILE
        self.location: Optional[str] = None
        self.units: Optional[str] = None
        self.days: Dict[str, DailyCacheEntry] = {}

    def reset(self, location: Optional[str] = None, units: Optional[str] = None) -> None:
        self.location = location
        self.units = units
        self.days = {}

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheCorruptionError(f"Unreadable cache {self.cache_path}: {e}") from e

        if not isinstance(raw, dict) or not isinstance(raw.get("days", {}), dict):
            raise CacheCorruptionError(f"Unexpected cache layout in {self.cache_path}")
        if raw.get("version") != CACHE_VERSION:
            raise CacheCorruptionError(f"Cache version {raw.get('version')!r} != {CACHE_VERSION}")
        return raw

    def load(self) -> None:
        """Load the persisted cache; a missing or corrupt file is an empty cache."""
        self.reset()

        if not self.cache_path.exists():
            logger.info(f"[RevisionCache] No cache file at {self.cache_path}, starting empty")
            return

        try:
            raw = self._read()
            days = {
                key: DailyCacheEntry.from_dict(value)
                for key, value in raw.get("days", {}).items()
                if isinstance(value, dict)
            }
        except CacheCorruptionError as e:
            logger.warning(f"[RevisionCache] {e} - starting empty")
            return

        self.location = raw.get("location")
        self.units = raw.get("units")
        self.days = days
        logger.debug(f"[RevisionCache] Loaded {len(self.days)} days for {self.location}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CACHE_VERSION,
            "location": self.location,
            "units": self.units,
            "days": {key: asdict(entry) for key, entry in sorted(self.days.items())},
        }

    def save(self) -> bool:
        """
        Persist via write-to-temp then rename.

        Returns:
            True on success; failures are logged, never raised.
        """
        try:
            self._write()
        except PersistError as e:
            logger.error(f"[RevisionCache] {e}")
            return False

        logger.debug(f"[RevisionCache] Saved {len(self.days)} days to {self.cache_path}")
        return True

    def _write(self) -> None:
        tmp_name = None
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w',
                encoding='utf-8',
                dir=self.cache_path.parent,
                prefix=f".{self.cache_path.name}.",
                delete=False
            ) as f:
                tmp_name = f.name
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_name, self.cache_path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistError(f"Failed to write cache {self.cache_path}: {e}") from e

    def prune(self, today: date) -> int:
        """
        Drop entries dated before today - MAX_HISTORY_DAYS, then keep only
        the MAX_ENTRIES most recent dates.

        Returns:
            Number of entries removed
        """
        cutoff = today - timedelta(days=self.MAX_HISTORY_DAYS)
        stale = []
        for key in self.days:
            try:
                if date.fromisoformat(key) < cutoff:
                    stale.append(key)
            except ValueError:
                stale.append(key)

        for key in stale:
            del self.days[key]

        overflow = sorted(self.days)[:-self.MAX_ENTRIES]
        for key in overflow:
            del self.days[key]

        removed = len(stale) + len(overflow)
        if removed:
            logger.debug(f"[RevisionCache] Pruned {len(stale)} entries older than {cutoff}, {len(overflow)} over the cap")
        return removed

    def merge(
        self,
        daily: List[Dict[str, Any]],
        latitude: float,
        longitude: float,
        tz: ZoneInfo,
        now: Optional[datetime] = None,
        units: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Reconcile this poll's daily entries with the cache.

        Mutates and returns `daily` with merged extremes written back, and
        records the merged values in the cache. Call save() afterwards.
        """
        now = now or datetime.now(timezone.utc)
        key = location_key(latitude, longitude)

        if self.location != key or (units is not None and self.units not in (None, units)):
            if self.location is not None:
                logger.info(f"[RevisionCache] Location/units changed ({self.location} -> {key}), resetting cache")
            self.reset(location=key, units=units)
        elif units is not None:
            self.units = units

        stamp = now.isoformat()

        for offset, day in enumerate(daily):
            date_key = local_date_key(now, offset, tz)
            new = DailyCacheEntry.from_daily(day)
            cached = self.days.get(date_key)

            if cached is None:
                merged = new
            elif offset == 0:
                merged = DailyCacheEntry(**{
                    name: merge_extreme(getattr(cached, name), getattr(new, name), pick)
                    for name, pick in TODAY_RULES.items()
                })
            else:
                merged = DailyCacheEntry(**{
                    name: merge_fresh(getattr(cached, name), getattr(new, name))
                    for name in TODAY_RULES
                })

            merged.last_updated = stamp
            self.days[date_key] = merged
            self._apply(day, merged)

            if offset == 0 and cached is not None:
                logger.debug(
                    f"[RevisionCache] Day 0 {date_key}: max_temp {cached.max_temp}->{merged.max_temp}, "
                    f"max_wind {cached.max_wind}->{merged.max_wind}"
                )

        self.prune(now.astimezone(tz).date())
        logger.info(f"[RevisionCache] Merged {len(daily)} days, {len(self.days)} cached for {key}")
        return daily

    @staticmethod
    def _apply(day: Dict[str, Any], entry: DailyCacheEntry) -> None:
        """Write merged extremes back into a daily forecast entry."""
        temp = day.setdefault("temp", {})
        feels_like = day.setdefault("feels_like", {})
        if entry.max_temp is not None:
            temp["max"] = temp["day"] = temp["eve"] = entry.max_temp
            feels_like["day"] = feels_like["eve"] = entry.max_temp
        if entry.min_temp is not None:
            temp["min"] = temp["night"] = temp["morn"] = entry.min_temp
            feels_like["night"] = feels_like["morn"] = entry.min_temp

        day["wind_speed"] = entry.max_wind
        day["wind_gust"] = entry.max_gust
        day["pop"] = entry.max_pop if entry.max_pop is not None else 0
        day["rain"] = entry.total_rain if entry.total_rain is not None else 0
        day["snow"] = entry.total_snow if entry.total_snow is not None else 0
        day["uvi"] = entry.max_uvi if entry.max_uvi is not None else 0

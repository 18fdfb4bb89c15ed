"""
Tests for the Revision Cache

These tests verify that:
1. Day-0 extremes never shrink across polls, and re-merging is a no-op
2. Future days adopt new values and fall back to cached ones
3. Entries older than a week are pruned and at most seven are kept
4. A location change discards the whole cache
5. A corrupt cache file loads as an empty cache
6. Saving writes the documented JSON layout

Run with: python -m pytest tests/test_cache_manager.py -v
"""

import copy
import json
import logging
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from gridcast.cache_manager import (
    CACHE_VERSION,
    DailyCacheEntry,
    RevisionCache,
    location_key,
    merge_extreme,
    merge_fresh,
)

TZ = ZoneInfo("America/New_York")
# 10:00 EST on 2025-12-20
NOW = datetime(2025, 12, 20, 15, 0, tzinfo=timezone.utc)
LAT, LON = 40.0, -75.0


def make_day(max_temp=50, min_temp=30, wind=10, gust=None, pop=0.2, rain=0, snow=0, uvi=0):
    return {
        "temp": {"day": max_temp, "min": min_temp, "max": max_temp, "night": min_temp, "eve": max_temp, "morn": min_temp},
        "feels_like": {"day": max_temp, "night": min_temp, "eve": max_temp, "morn": min_temp},
        "wind_speed": wind,
        "wind_gust": gust,
        "pop": pop,
        "rain": rain,
        "snow": snow,
        "uvi": uvi,
    }


@pytest.fixture
def cache(tmp_path):
    cache_file = tmp_path / "cache" / "revision_cache.json"
    logger.info(f"[TEST] Using cache file: {cache_file}")
    return RevisionCache(cache_file)


class TestMergeHelpers:

    def test_extreme_defers_to_present_side(self):
        assert merge_extreme(None, 5) == 5
        assert merge_extreme(5, None) == 5
        assert merge_extreme(float("nan"), 5) == 5
        assert merge_extreme(None, None) is None

    def test_extreme_pick(self):
        assert merge_extreme(3, 5) == 5
        assert merge_extreme(3, 5, min) == 3

    def test_fresh(self):
        assert merge_fresh(3, 5) == 5
        assert merge_fresh(3, None) == 3
        assert merge_fresh(None, float("nan")) is None

    def test_location_key(self):
        assert location_key(40, -75) == "40.00,-75.00"


class TestDayZero:

    def test_max_wind_never_shrinks(self, cache):
        cache.merge([make_day(wind=20)], LAT, LON, TZ, now=NOW)
        later = NOW + timedelta(hours=6)
        merged = cache.merge([make_day(wind=14)], LAT, LON, TZ, now=later)
        assert merged[0]["wind_speed"] == 20
        assert cache.days["2025-12-20"].max_wind == 20

    def test_low_temp_keeps_minimum(self, cache):
        cache.merge([make_day(max_temp=50, min_temp=28)], LAT, LON, TZ, now=NOW)
        merged = cache.merge([make_day(max_temp=48, min_temp=31)], LAT, LON, TZ, now=NOW)
        assert merged[0]["temp"]["max"] == 50
        assert merged[0]["temp"]["min"] == 28
        assert merged[0]["temp"]["morn"] == 28
        assert merged[0]["feels_like"]["day"] == 50

    def test_higher_reading_wins(self, cache):
        cache.merge([make_day(max_temp=50)], LAT, LON, TZ, now=NOW)
        merged = cache.merge([make_day(max_temp=55)], LAT, LON, TZ, now=NOW)
        assert merged[0]["temp"]["max"] == 55

    def test_idempotent(self, cache):
        cache.merge([make_day(wind=20), make_day(wind=5)], LAT, LON, TZ, now=NOW)
        first = copy.deepcopy({k: v for k, v in cache.to_dict()["days"].items()})
        cache.merge([make_day(wind=20), make_day(wind=5)], LAT, LON, TZ, now=NOW)
        second = cache.to_dict()["days"]
        for key in first:
            first[key].pop("last_updated")
            second[key].pop("last_updated")
        assert first == second

    def test_missing_new_value_keeps_cached(self, cache):
        cache.merge([make_day(gust=30)], LAT, LON, TZ, now=NOW)
        merged = cache.merge([make_day(gust=None)], LAT, LON, TZ, now=NOW)
        assert merged[0]["wind_gust"] == 30


class TestFutureDays:

    def test_new_value_adopted(self, cache):
        cache.merge([make_day(), make_day(max_temp=45, wind=30)], LAT, LON, TZ, now=NOW)
        merged = cache.merge([make_day(), make_day(max_temp=40, wind=12)], LAT, LON, TZ, now=NOW)
        assert merged[1]["temp"]["max"] == 40
        assert merged[1]["wind_speed"] == 12

    def test_null_falls_back_to_cached(self, cache):
        cache.merge([make_day(), make_day(max_temp=45)], LAT, LON, TZ, now=NOW)
        merged = cache.merge([make_day(), make_day(max_temp=None)], LAT, LON, TZ, now=NOW)
        assert merged[1]["temp"]["max"] == 45

    def test_dates_use_local_day(self, cache):
        # 03:00 UTC on the 21st is still the 20th in New York
        late = datetime(2025, 12, 21, 3, 0, tzinfo=timezone.utc)
        cache.merge([make_day(), make_day()], LAT, LON, TZ, now=late)
        assert sorted(cache.days) == ["2025-12-20", "2025-12-21"]


class TestPruneAndReset:

    def test_prune_keeps_recent(self, cache):
        today = date(2025, 12, 20)
        cache.days = {
            (today - timedelta(days=10)).isoformat(): DailyCacheEntry(max_temp=40),
            (today - timedelta(days=2)).isoformat(): DailyCacheEntry(max_temp=42),
        }
        removed = cache.prune(today)
        assert removed == 1
        assert list(cache.days) == ["2025-12-18"]

    def test_merge_prunes(self, cache):
        cache.merge([make_day()], LAT, LON, TZ, now=NOW - timedelta(days=10))
        cache.merge([make_day()], LAT, LON, TZ, now=NOW)
        assert "2025-12-10" not in cache.days
        assert "2025-12-20" in cache.days

    def test_successive_days_stay_capped(self, cache):
        for offset in range(4):
            cache.merge([make_day()] * 7, LAT, LON, TZ, now=NOW + timedelta(days=offset))
            assert len(cache.days) <= RevisionCache.MAX_ENTRIES

        assert len(cache.days) == 7
        assert min(cache.days) == "2025-12-23"
        assert max(cache.days) == "2025-12-29"

    def test_prune_caps_entry_count(self, cache):
        today = date(2025, 12, 20)
        cache.days = {
            (today + timedelta(days=offset)).isoformat(): DailyCacheEntry(max_temp=40)
            for offset in range(-3, 7)
        }
        removed = cache.prune(today)
        assert removed == 3
        assert sorted(cache.days)[0] == "2025-12-20"

    def test_location_change_resets(self, cache):
        cache.merge([make_day(wind=20)] * 3, 40.00, -75.00, TZ, now=NOW)
        cache.merge([make_day(wind=5)], 34.05, -118.25, ZoneInfo("America/Los_Angeles"), now=NOW)
        assert cache.location == "34.05,-118.25"
        assert list(cache.days) == ["2025-12-20"]
        assert cache.days["2025-12-20"].max_wind == 5

    def test_units_change_resets(self, cache):
        cache.merge([make_day(max_temp=50)], LAT, LON, TZ, now=NOW, units="imperial")
        merged = cache.merge([make_day(max_temp=10)], LAT, LON, TZ, now=NOW, units="metric")
        assert merged[0]["temp"]["max"] == 10
        assert cache.units == "metric"


class TestPersistence:

    def test_save_and_load(self, cache):
        cache.merge([make_day(wind=20)], LAT, LON, TZ, now=NOW, units="imperial")
        assert cache.save() is True

        raw = json.loads(cache.cache_path.read_text(encoding="utf-8"))
        assert raw["version"] == CACHE_VERSION
        assert raw["location"] == "40.00,-75.00"
        assert raw["units"] == "imperial"
        assert raw["days"]["2025-12-20"]["max_wind"] == 20

        reloaded = RevisionCache(cache.cache_path)
        reloaded.load()
        assert reloaded.location == "40.00,-75.00"
        assert reloaded.days["2025-12-20"].max_wind == 20

    def test_no_temp_files_left_behind(self, cache):
        cache.merge([make_day()], LAT, LON, TZ, now=NOW)
        cache.save()
        assert [p.name for p in cache.cache_path.parent.iterdir()] == [cache.cache_path.name]

    def test_missing_file_is_empty(self, cache):
        cache.load()
        assert cache.days == {}
        assert cache.location is None

    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        json.dumps({"version": 99, "days": {}}),
        json.dumps({"version": CACHE_VERSION, "days": []}),
    ])
    def test_corrupt_file_is_empty(self, cache, content):
        cache.cache_path.parent.mkdir(parents=True)
        cache.cache_path.write_text(content, encoding="utf-8")
        cache.load()
        assert cache.days == {}

    def test_save_failure_is_reported(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        cache = RevisionCache(blocker / "revision_cache.json")
        assert cache.save() is False

"""
Tests for the Condition Classifier

These tests verify that:
1. Free-text Period descriptions map to the right category and icon
2. Rule priority is respected (storms over rain, snow over rain, ...)
3. Coded grid weather entries map to OpenWeather codes
4. Day/night resolution falls back from flag to sun window to clock

Run with: python -m pytest tests/test_conditions.py -v
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from gridcast.conditions import (
    TEXT_RULES,
    Category,
    classify,
    classify_coded,
    classify_text,
    clear_sky,
    resolve_daytime,
)

UTC = timezone.utc


class TestClassifyText:

    def test_chance_light_snow_is_snow(self):
        condition = classify_text("Chance Light Snow", is_daytime=True)
        assert condition.category == Category.SNOW
        assert condition.id == 600
        assert condition.icon == "13d"

    def test_description_is_lowercased(self):
        condition = classify_text("Mostly Sunny", is_daytime=True)
        assert condition.description == "mostly sunny"

    def test_night_icon_suffix(self):
        assert classify_text("Clear", is_daytime=False).icon == "01n"

    @pytest.mark.parametrize("text,category,code", [
        ("Slight Chance Rain Showers", Category.RAIN, 500),
        ("Showers And Thunderstorms Likely", Category.THUNDERSTORM, 200),
        ("Freezing Rain", Category.SLEET, 611),
        ("Rain And Snow", Category.SNOW, 600),
        ("Patchy Fog", Category.FOG, 741),
        ("Partly Cloudy", Category.CLOUDS, 801),
        ("Mostly Cloudy", Category.CLOUDS, 803),
        ("Cloudy", Category.CLOUDS, 804),
        ("Partly Sunny", Category.CLOUDS, 801),
        ("Sunny", Category.CLEAR, 800),
        ("Breezy", Category.WIND, 771),
    ])
    def test_rule_priority(self, text, category, code):
        condition = classify_text(text, is_daytime=True)
        logger.info(f"[TEST] {text!r} -> {condition.category.value} {condition.id}")
        assert condition.category == category
        assert condition.id == code

    def test_ice_needs_a_whole_word(self):
        # "nice" must not read as ice
        assert classify_text("Nice And Sunny", True).category == Category.CLEAR
        assert classify_text("Snow And Ice", True).category == Category.SLEET

    def test_unmatched_text_is_clear(self):
        condition = classify_text("Hot", is_daytime=True)
        assert condition.category == Category.CLEAR
        assert condition.description == "hot"

    def test_empty_text_defers(self):
        assert classify_text("", True) is None
        assert classify_text(None, True) is None

    def test_rules_are_an_ordered_table(self):
        assert TEXT_RULES[0][1].category == Category.THUNDERSTORM
        assert TEXT_RULES[-1][1].category == Category.WIND

    def test_to_dict_shape(self):
        assert classify_text("Sunny", True).to_dict() == {
            "id": 800, "main": "Clear", "description": "sunny", "icon": "01d",
        }


class TestClassifyCoded:

    def test_light_rain(self):
        condition = classify_coded(
            {"weather": "rain_showers", "coverage": "chance", "intensity": "light"}, True
        )
        assert condition.id == 500
        assert condition.description == "chance light rain showers"

    def test_moderate_rain(self):
        assert classify_coded({"weather": "rain", "coverage": "likely", "intensity": "moderate"}, True).id == 501

    def test_thunderstorms(self):
        assert classify_coded({"weather": "thunderstorms", "coverage": "isolated"}, False).icon == "11n"

    def test_fog(self):
        assert classify_coded({"weather": "fog", "coverage": "patchy"}, True).category == Category.FOG

    def test_nothing_forecast_is_clear_sky(self):
        condition = classify_coded(None, True)
        assert condition == clear_sky(True)
        assert condition.description == "clear sky"

    def test_null_fields(self):
        assert classify_coded({"weather": None, "coverage": None, "intensity": None}, True).id == 800

    def test_non_string_fields_ignored(self):
        assert classify_coded({"weather": ["snow"], "coverage": 3, "intensity": "light"}, True).id == 800
        assert classify_coded({"weather": "snow", "coverage": {"x": 1}}, True).category == Category.SNOW

    def test_dispatch(self):
        assert classify("Light Snow", True).category == Category.SNOW
        assert classify({"weather": "snow"}, True).category == Category.SNOW
        assert classify(None, True).category == Category.CLEAR


class TestResolveDaytime:

    def test_explicit_flag_wins(self):
        assert resolve_daytime(False, datetime(2024, 6, 1, 18, 0, tzinfo=UTC)) is False

    def test_sun_window(self):
        sunrise = datetime(2024, 6, 1, 10, 0, tzinfo=UTC)
        sunset = datetime(2024, 6, 2, 1, 0, tzinfo=UTC)
        assert resolve_daytime(None, datetime(2024, 6, 1, 12, 0, tzinfo=UTC), sunrise, sunset)
        assert not resolve_daytime(None, datetime(2024, 6, 2, 3, 0, tzinfo=UTC), sunrise, sunset)

    def test_clock_fallback_uses_local_time(self):
        tz = ZoneInfo("America/Chicago")
        # 13:00 UTC is 07:00 CST
        assert resolve_daytime(None, datetime(2024, 12, 17, 13, 0, tzinfo=UTC), tz=tz)
        # 03:00 UTC is 21:00 CST
        assert not resolve_daytime(None, datetime(2024, 12, 17, 3, 0, tzinfo=UTC), tz=tz)

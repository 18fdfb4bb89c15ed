"""
Condition Classifier for gridcast

Maps weather.gov condition descriptions onto a small OpenWeather-style
taxonomy: {id, main, description, icon}.

Two document shapes describe conditions:
- forecast Periods carry short free text ("Chance Light Snow")
- grid properties carry coded {weather, coverage, intensity} entries

Both are classified by ordered rule tables, evaluated top to bottom, first
match wins. The order is the priority: a "Rain And Snow" period is Snow.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DAY_START = time(6, 0)
DAY_END = time(18, 0)


class Category(str, Enum):
    CLEAR = "Clear"
    CLOUDS = "Clouds"
    RAIN = "Rain"
    SNOW = "Snow"
    SLEET = "Sleet"
    THUNDERSTORM = "Thunderstorm"
    FOG = "Fog"
    WIND = "Wind"


@dataclass(frozen=True)
class ConditionTemplate:
    id: int
    category: Category
    icon_base: str


@dataclass(frozen=True)
class Condition:
    id: int
    category: Category
    description: str
    is_daytime: bool
    icon_base: str

    @property
    def icon(self) -> str:
        return f"{self.icon_base}{'d' if self.is_daytime else 'n'}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "main": self.category.value,
            "description": self.description,
            "icon": self.icon,
        }


THUNDERSTORM = ConditionTemplate(200, Category.THUNDERSTORM, "11")
RAIN_LIGHT = ConditionTemplate(500, Category.RAIN, "10")
RAIN = ConditionTemplate(501, Category.RAIN, "10")
SNOW = ConditionTemplate(600, Category.SNOW, "13")
SLEET = ConditionTemplate(611, Category.SLEET, "13")
FOG = ConditionTemplate(741, Category.FOG, "50")
WIND = ConditionTemplate(771, Category.WIND, "50")
CLEAR = ConditionTemplate(800, Category.CLEAR, "01")
FEW_CLOUDS = ConditionTemplate(801, Category.CLOUDS, "02")
SCATTERED_CLOUDS = ConditionTemplate(802, Category.CLOUDS, "03")
BROKEN_CLOUDS = ConditionTemplate(803, Category.CLOUDS, "04")
OVERCAST = ConditionTemplate(804, Category.CLOUDS, "04")

Predicate = Callable[[str], bool]


def _any_of(*words: str) -> Predicate:
    return lambda text: any(w in text for w in words)


def _all_of(*predicates: Predicate) -> Predicate:
    return lambda text: all(p(text) for p in predicates)


# "ice" only as a word: "Slight Chance" and "Notice" must not read as ice
_ICE_WORD = re.compile(r"\bice\b")


def _sleet(text: str) -> bool:
    return "sleet" in text or "freezing" in text or bool(_ICE_WORD.search(text))


_cloudy = _any_of("overcast", "cloudy")

# Free-text rules for forecast Period shortForecast values
TEXT_RULES: List[Tuple[Predicate, ConditionTemplate]] = [
    (_any_of("thunder", "storm"), THUNDERSTORM),
    (_sleet, SLEET),
    (_any_of("snow", "blizzard", "flurries"), SNOW),
    (_any_of("rain", "showers", "drizzle"), RAIN_LIGHT),
    (_any_of("fog", "mist", "haze", "smoke"), FOG),
    (_all_of(_cloudy, _any_of("partly", "mostly clear", "mostly sunny")), FEW_CLOUDS),
    (_all_of(_cloudy, _any_of("mostly cloudy")), BROKEN_CLOUDS),
    (_cloudy, OVERCAST),
    (_any_of("partly sunny", "mostly sunny", "mostly clear"), FEW_CLOUDS),
    (_any_of("sunny", "clear"), CLEAR),
    (_any_of("wind", "breezy", "blustery"), WIND),
]


def _coded(weather: Predicate, coverage: Optional[Predicate] = None, intensity: Optional[str] = None):
    """Predicate over a (weather, coverage, intensity) triple."""
    def predicate(triple: Tuple[str, str, str]) -> bool:
        w, c, i = triple
        if not weather(w):
            return False
        if coverage is not None and not coverage(c):
            return False
        return intensity is None or i == intensity
    return predicate


def _cloud_code(triple: Tuple[str, str, str]) -> bool:
    w, c, _ = triple
    return "cloud" in w or "overcast" in c or "mostly" in c


def _cloud_coverage(*words: str):
    return lambda triple: _cloud_code(triple) and any(word in triple[1] for word in words)


# Structured rules for grid-properties weather entries
CODED_RULES: List[Tuple[Callable[[Tuple[str, str, str]], bool], ConditionTemplate]] = [
    (_coded(_any_of("thunder", "storm")), THUNDERSTORM),
    (_coded(_any_of("sleet", "freezing", "ice")), SLEET),
    (_coded(_any_of("snow", "blizzard")), SNOW),
    (_coded(_any_of("rain", "drizzle", "showers"), intensity="light"), RAIN_LIGHT),
    (_coded(_any_of("rain", "drizzle", "showers")), RAIN),
    (_coded(_any_of("fog", "mist", "haze", "smoke")), FOG),
    (_cloud_coverage("few", "partly"), FEW_CLOUDS),
    (_cloud_coverage("scattered"), SCATTERED_CLOUDS),
    (_cloud_code, OVERCAST),
    (_coded(_any_of("wind")), WIND),
]


def _build(template: ConditionTemplate, description: str, is_daytime: bool) -> Condition:
    return Condition(
        id=template.id,
        category=template.category,
        description=description,
        is_daytime=is_daytime,
        icon_base=template.icon_base
    )


def clear_sky(is_daytime: bool) -> Condition:
    return _build(CLEAR, "clear sky", is_daytime)


def classify_text(text: Optional[str], is_daytime: bool) -> Optional[Condition]:
    """
    Classify a forecast Period's shortForecast.

    Returns None for empty text so callers can fall back to the coded
    classifier; unmatched text is Clear.
    """
    if not text:
        return None

    lowered = text.lower()
    for predicate, template in TEXT_RULES:
        if predicate(lowered):
            return _build(template, lowered, is_daytime)

    logger.debug(f"[classify_text] No rule for {text!r}, using Clear")
    return _build(CLEAR, lowered, is_daytime)


def _code(coded: Dict[str, Any], key: str) -> str:
    value = coded.get(key)
    return value.lower() if isinstance(value, str) else ""


def classify_coded(coded: Optional[Dict[str, Any]], is_daytime: bool) -> Condition:
    """
    Classify a grid-properties weather entry.

    Args:
        coded: {"weather": "rain_showers", "coverage": "chance", "intensity": "light", ...}
               or None when nothing is forecast
    """
    if not coded:
        return clear_sky(is_daytime)

    weather, coverage, intensity = (_code(coded, key) for key in ("weather", "coverage", "intensity"))

    description = " ".join(f"{coverage} {intensity} {weather}".replace("_", " ").split())

    for predicate, template in CODED_RULES:
        if predicate((weather, coverage, intensity)):
            return _build(template, description, is_daytime)

    return clear_sky(is_daytime)


def classify(value: Union[str, Dict[str, Any], None], is_daytime: bool) -> Optional[Condition]:
    """Classify either a free-text description or a coded weather entry."""
    if isinstance(value, dict) or value is None:
        return classify_coded(value, is_daytime)
    return classify_text(value, is_daytime)


def resolve_daytime(
    is_daytime: Optional[bool] = None,
    instant: Optional[datetime] = None,
    sunrise: Optional[datetime] = None,
    sunset: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None
) -> bool:
    """
    Decide day or night for an icon.

    Uses an explicit period flag if given, else sunrise <= instant < sunset,
    else 06:00-18:00 local time.
    """
    if is_daytime is not None:
        return is_daytime

    if instant is None:
        return True

    if sunrise is not None and sunset is not None:
        return sunrise <= instant < sunset

    local = instant.astimezone(tz) if tz is not None else instant
    return DAY_START <= local.time() < DAY_END

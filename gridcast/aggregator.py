"""
Forecast Aggregator for gridcast

Builds the OpenWeather-shaped forecast object from the decoded sources:

    {
        "lat", "lon", "timezone", "timezone_offset",
        "current": {...},
        "hourly": [48 x {...}],
        "daily":  [7 x {...}],
        "alerts": [...]
    }

Source priorities:
- Scalars (temperature, wind, humidity, ...) always come from the grid
  properties time series.
- Daily High/Low come from the 12-hour forecast Periods, paired day then
  night in document order (matches the weather.gov website numbers).
- Conditions come from Period text when a Period covers the instant,
  otherwise from the coded grid 'weather' series.
- UV comes from EPA (today only).

All instants in the output are Unix epoch seconds.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, TypedDict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gridcast.conditions import Condition, classify_coded, classify_text, resolve_daytime
from gridcast.providers.epa_uv import max_uv, uv_at_hour
from gridcast.providers.nws import Alert, ForecastPeriod, find_period
from gridcast.timeseries import (
    MS_PER_HOUR,
    TimeSeriesPoint,
    decode_series,
    local_day_bounds,
    point_at,
    value_at,
    values_overlapping_day,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_HUMIDITY = 50
DEFAULT_PRESSURE_PA = 101300

HOURLY_COUNT = 48
DAILY_COUNT = 7

UNITS = ("metric", "imperial", "standard")

# Grid properties consumed by the aggregator
SCALAR_SERIES = (
    "temperature",
    "apparentTemperature",
    "dewpoint",
    "relativeHumidity",
    "pressure",
    "visibility",
    "windSpeed",
    "windGust",
    "windDirection",
    "skyCover",
    "probabilityOfPrecipitation",
    "quantitativePrecipitation",
    "snowfallAmount",
)


class DailyTemperature(TypedDict):
    day: Optional[float]
    min: Optional[float]
    max: Optional[float]
    night: Optional[float]
    eve: Optional[float]
    morn: Optional[float]


@dataclass
class PipelineInputs:
    """
    Everything one poll fetched, already decoded by the source fetchers.

    Only grid_data is mandatory; a failed source is None.
    """
    latitude: float
    longitude: float
    grid_data: Dict[str, Any]
    forecast: Optional[List[ForecastPeriod]] = None
    hourly_forecast: Optional[List[ForecastPeriod]] = None
    sun: Optional[Tuple[datetime, datetime]] = None
    uv: Optional[List[Dict[str, Any]]] = None
    alerts: Optional[List[Alert]] = None


def convert_temp(celsius: Optional[float], units: str) -> Optional[float]:
    """Convert Celsius to the target unit system."""
    if celsius is None:
        return None
    if units == "imperial":
        return celsius * 9 / 5 + 32
    if units == "standard":
        return celsius + 273.15
    return celsius


def convert_period_temp(value: Optional[float], unit: str, units: str) -> Optional[float]:
    """Convert a Period temperature (in 'F' or 'C') to the target unit system."""
    if value is None:
        return None
    unit = (unit or "F").upper()
    if (unit == "F" and units == "imperial") or (unit == "C" and units == "metric"):
        return value
    celsius = (value - 32) * 5 / 9 if unit == "F" else value
    return convert_temp(celsius, units)


def convert_speed(kmh: Optional[float], units: str) -> Optional[float]:
    """Convert km/h to mph (imperial) or m/s (metric, standard)."""
    if kmh is None:
        return None
    if units == "imperial":
        return kmh * 0.621371
    return kmh / 3.6


def pa_to_hpa(pascals: Optional[float]) -> Optional[float]:
    return pascals / 100 if pascals is not None else None


def epoch(instant: Optional[datetime]) -> Optional[int]:
    return int(instant.timestamp()) if instant is not None else None


def _present(values: List[Any]) -> List[float]:
    return [v for v in values if v is not None]


def _mean(values: List[Any]) -> Optional[float]:
    present = _present(values)
    return sum(present) / len(present) if present else None


def pair_periods(
    periods: List[ForecastPeriod],
    index: int
) -> Tuple[Optional[ForecastPeriod], Optional[ForecastPeriod], int]:
    """
    Take the next day/night pair starting at `index`.

    A day takes a daytime Period if the next unconsumed one is daytime, then
    a nighttime Period if the next one is nighttime. When the document starts
    with "Tonight", day 0 has no daytime Period.

    Returns:
        (day_period, night_period, next_index)
    """
    day_period = None
    night_period = None

    if index < len(periods) and periods[index].is_daytime:
        day_period = periods[index]
        index += 1

    if index < len(periods) and not periods[index].is_daytime:
        night_period = periods[index]
        index += 1

    return day_period, night_period, index


class ForecastAggregator:
    """
    Turns one poll's PipelineInputs into the normalized forecast.

    `now` is captured once so current, hourly, daily and the day-0
    future-only filter all agree on the same instant.
    """

    def __init__(
        self,
        inputs: PipelineInputs,
        units: str = "imperial",
        now: Optional[datetime] = None,
        fallback_timezone: str = DEFAULT_TIMEZONE
    ):
        if units not in UNITS:
            logger.warning(f"[ForecastAggregator] Unknown units {units!r}, using metric")
            units = "metric"

        self.inputs = inputs
        self.units = units
        self.now = now or datetime.now(timezone.utc)

        props = inputs.grid_data.get("properties")
        if not isinstance(props, dict):
            props = {}
        self.timezone_name, self.tz = self._load_timezone(props.get("timeZone"), fallback_timezone)

        self.series: Dict[str, List[TimeSeriesPoint]] = {
            name: decode_series(props.get(name), name) for name in SCALAR_SERIES
        }
        self.weather_series = decode_series(props.get("weather"), "weather")
        self.periods = inputs.forecast or []
        self.hourly_periods = inputs.hourly_forecast or []
        self.sunrise, self.sunset = inputs.sun or (None, None)
        self.uv = inputs.uv

        logger.debug(
            f"[ForecastAggregator] tz={self.timezone_name}, {len(self.periods)} periods, "
            f"{len(self.hourly_periods)} hourly periods, uv={'yes' if self.uv else 'no'}"
        )

    @staticmethod
    def _load_timezone(name: Optional[str], fallback: str) -> Tuple[str, ZoneInfo]:
        for candidate in (name, fallback, DEFAULT_TIMEZONE):
            if not candidate:
                continue
            try:
                return candidate, ZoneInfo(candidate)
            except (ZoneInfoNotFoundError, TypeError, ValueError):
                logger.warning(f"[ForecastAggregator] Unknown time zone {candidate!r}")
        return "UTC", ZoneInfo("UTC")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _now_value(self, name: str) -> Any:
        return value_at(self.series[name], self.now)

    def _hour_value(self, name: str, instant: datetime) -> Any:
        return value_at(self.series[name], instant, fallback_to_first=False)

    def _hour_amount(self, name: str, instant: datetime) -> Optional[float]:
        """Amount for one hour, prorated from a longer accumulation interval."""
        point = point_at(self.series[name], instant)
        if point is None or point.value is None or point.duration_ms <= 0:
            return None
        return point.value * min(MS_PER_HOUR / point.duration_ms, 1.0)

    def weather_at(self, instant: datetime) -> Optional[Dict[str, Any]]:
        """First coded weather entry in effect at `instant`."""
        value = value_at(self.weather_series, instant, fallback_to_first=False)
        if isinstance(value, list) and value and isinstance(value[0], dict):
            return value[0]
        return None

    def _shifted_sun(self, day_offset: int) -> Tuple[Optional[datetime], Optional[datetime]]:
        shift = timedelta(days=day_offset)
        sunrise = self.sunrise + shift if self.sunrise else None
        sunset = self.sunset + shift if self.sunset else None
        return sunrise, sunset

    def condition_at(
        self,
        instant: datetime,
        periods: List[ForecastPeriod],
        day_offset: int = 0
    ) -> Condition:
        """Period text if a Period covers the instant, else the coded series."""
        period = find_period(periods, instant)
        if period is not None:
            condition = classify_text(period.short_forecast, period.is_daytime)
            if condition is not None:
                return condition

        sunrise, sunset = self._shifted_sun(day_offset)
        is_daytime = resolve_daytime(None, instant, sunrise, sunset, self.tz)
        return classify_coded(self.weather_at(instant), is_daytime)

    def _local_hour(self) -> int:
        return self.now.astimezone(self.tz).hour

    def current_uv(self) -> float:
        """UV for the current local hour, else the day's maximum, else 0."""
        if not self.uv:
            return 0
        value = uv_at_hour(self.uv, self._local_hour())
        if value is not None:
            return value
        return max_uv(self.uv)

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def build_current(self) -> Dict[str, Any]:
        units = self.units
        return {
            "dt": epoch(self.now),
            "temp": convert_temp(self._now_value("temperature"), units),
            "feels_like": convert_temp(self._now_value("apparentTemperature"), units),
            "humidity": self._now_value("relativeHumidity"),
            "dew_point": convert_temp(self._now_value("dewpoint"), units),
            "pressure": pa_to_hpa(self._now_value("pressure")),
            "visibility": self._now_value("visibility"),
            "wind_speed": convert_speed(self._now_value("windSpeed"), units),
            "wind_gust": convert_speed(self._now_value("windGust"), units),
            "wind_deg": self._now_value("windDirection"),
            "uvi": self.current_uv(),
            "clouds": self._now_value("skyCover"),
            "sunrise": epoch(self.sunrise),
            "sunset": epoch(self.sunset),
            "weather": [self.condition_at(self.now, self.hourly_periods).to_dict()],
        }

    def build_hourly(self, hours: int = HOURLY_COUNT) -> List[Dict[str, Any]]:
        units = self.units
        base = self.now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
        today = self.now.astimezone(self.tz).date()
        hourly = []

        for i in range(hours):
            hour_time = base + timedelta(hours=i)
            day_offset = i // 24
            sunrise, sunset = self._shifted_sun(day_offset)

            humidity = self._hour_value("relativeHumidity", hour_time)
            pressure = self._hour_value("pressure", hour_time)
            wind_dir = self._hour_value("windDirection", hour_time)
            pop = self._hour_value("probabilityOfPrecipitation", hour_time)

            local = hour_time.astimezone(self.tz)
            uvi = uv_at_hour(self.uv, local.hour) if local.date() == today else None

            hourly.append({
                "dt": epoch(hour_time),
                "temp": convert_temp(self._hour_value("temperature", hour_time), units),
                "feels_like": convert_temp(self._hour_value("apparentTemperature", hour_time), units),
                "humidity": humidity if humidity is not None else DEFAULT_HUMIDITY,
                "dew_point": convert_temp(self._hour_value("dewpoint", hour_time), units),
                "pressure": pa_to_hpa(pressure if pressure is not None else DEFAULT_PRESSURE_PA),
                "wind_speed": convert_speed(self._hour_value("windSpeed", hour_time), units),
                "wind_gust": convert_speed(self._hour_value("windGust", hour_time), units),
                "wind_deg": wind_dir if wind_dir is not None else 0,
                "uvi": uvi or 0,
                "clouds": self._hour_value("skyCover", hour_time),
                "pop": (pop or 0) / 100,
                "rain": self._hour_amount("quantitativePrecipitation", hour_time),
                "snow": self._hour_amount("snowfallAmount", hour_time),
                "sunrise": epoch(sunrise),
                "sunset": epoch(sunset),
                "weather": [self.condition_at(hour_time, self.hourly_periods, day_offset).to_dict()],
            })

        return hourly

    def daily_aggregates(self, day_start: datetime, day_end: datetime, future_only: bool) -> Dict[str, Any]:
        """
        Aggregate grid series over one local day.

        For day 0 (`future_only`), intervals that already ended are ignored.
        """
        def values(name: str) -> List[Any]:
            return values_overlapping_day(self.series[name], day_start, day_end, future_only, self.now)

        winds = _present(values("windSpeed"))
        gusts = _present(values("windGust"))
        pops = _present(values("probabilityOfPrecipitation"))
        rain = values("quantitativePrecipitation")
        snow = values("snowfallAmount")
        humidity = _mean(values("relativeHumidity"))
        directions = _present(values("windDirection"))

        return {
            "max_wind": max(winds) if winds else None,
            "max_gust": max(gusts) if gusts else None,
            "max_pop": max(pops) if pops else 0,
            "total_rain": sum(_present(rain)),
            "total_snow": sum(_present(snow)),
            "avg_humidity": humidity if humidity is not None else DEFAULT_HUMIDITY,
            "avg_dew_point": _mean(values("dewpoint")),
            "avg_pressure": _mean(values("pressure")),
            "avg_clouds": _mean(values("skyCover")),
            "wind_deg": directions[0] if directions else 0,
        }

    def build_daily(self, days: int = DAILY_COUNT) -> List[Dict[str, Any]]:
        units = self.units
        today_max_uv = max_uv(self.uv, self._local_hour()) if self.uv else 0
        period_idx = 0
        daily = []

        if self.periods:
            first = self.periods[0]
            logger.debug(
                f"[ForecastAggregator] First period: {first.name} "
                f"(isDaytime={first.is_daytime}, temp={first.temperature})"
            )

        for i in range(days):
            day_start, day_end = local_day_bounds(self.now, i, self.tz)
            noon = datetime.combine(day_start.date(), time(12, 0), tzinfo=self.tz)

            day_period, night_period, period_idx = pair_periods(self.periods, period_idx)
            high = convert_period_temp(
                day_period.temperature, day_period.temperature_unit, units
            ) if day_period else None
            low = convert_period_temp(
                night_period.temperature, night_period.temperature_unit, units
            ) if night_period else None

            if i == 0:
                logger.debug(
                    f"[ForecastAggregator] Day 0: day={day_period.name if day_period else None}, "
                    f"night={night_period.name if night_period else None}, high={high}, low={low}"
                )

            agg = self.daily_aggregates(day_start, day_end, future_only=(i == 0))

            forecast_period = day_period or night_period
            condition = None
            if forecast_period is not None:
                condition = classify_text(forecast_period.short_forecast, forecast_period.is_daytime)
            if condition is None:
                sunrise, sunset = self._shifted_sun(i)
                condition = classify_coded(
                    self.weather_at(noon),
                    resolve_daytime(None, noon, sunrise, sunset, self.tz)
                )

            sunrise, sunset = self._shifted_sun(i)
            avg_pressure = agg["avg_pressure"]

            temp: DailyTemperature = {
                "day": high, "min": low, "max": high,
                "night": low, "eve": high, "morn": low,
            }

            daily.append({
                "dt": epoch(noon),
                "date": day_start.date().isoformat(),
                "sunrise": epoch(sunrise),
                "sunset": epoch(sunset),
                "temp": temp,
                "feels_like": {"day": high, "night": low, "eve": high, "morn": low},
                "humidity": agg["avg_humidity"],
                "dew_point": convert_temp(agg["avg_dew_point"], units),
                "pressure": pa_to_hpa(avg_pressure),
                "wind_speed": convert_speed(agg["max_wind"], units),
                "wind_gust": convert_speed(agg["max_gust"], units),
                "wind_deg": agg["wind_deg"],
                "clouds": agg["avg_clouds"],
                "pop": agg["max_pop"] / 100,
                "rain": agg["total_rain"],
                "snow": agg["total_snow"],
                "uvi": today_max_uv if i == 0 else 0,
                "weather": [condition.to_dict()],
            })

        return daily

    def build(self) -> Dict[str, Any]:
        """Assemble the full normalized forecast."""
        offset = self.now.astimezone(self.tz).utcoffset()
        forecast = {
            "lat": self.inputs.latitude,
            "lon": self.inputs.longitude,
            "timezone": self.timezone_name,
            "timezone_offset": int(offset.total_seconds()) if offset else 0,
            "current": self.build_current(),
            "hourly": self.build_hourly(),
            "daily": self.build_daily(),
            "alerts": list(self.inputs.alerts or []),
        }
        logger.info(
            f"[ForecastAggregator] Built forecast: {len(forecast['hourly'])} hourly, "
            f"{len(forecast['daily'])} daily, {len(forecast['alerts'])} alerts"
        )
        return forecast

"""
Providers package for gridcast

Free, keyless sources joined by the fetch orchestrator:

1. NWS (api.weather.gov) - period forecast, hourly forecast, active alerts
2. sunrise-sunset.org - sunrise/sunset instants
3. EPA Envirofacts - hourly UV index by ZIP code

The mandatory grid point and grid properties fetches live in gridcast.grid.
"""

from gridcast.providers.nws import (
    NWSProvider,
    Alert,
    ForecastPeriod,
    decode_alerts,
    decode_periods,
    find_period,
)

from gridcast.providers.sun import (
    SunriseSunsetProvider,
    sun_times,
)

from gridcast.providers.epa_uv import (
    EPAUVProvider,
    get_uv_hour,
    max_uv,
    uv_at_hour,
)

__all__ = [
    # NWS (forecast text + alerts)
    "NWSProvider",
    "Alert",
    "ForecastPeriod",
    "decode_alerts",
    "decode_periods",
    "find_period",
    # sunrise-sunset.org
    "SunriseSunsetProvider",
    "sun_times",
    # EPA UV (ZIP code only)
    "EPAUVProvider",
    "get_uv_hour",
    "max_uv",
    "uv_at_hour",
]

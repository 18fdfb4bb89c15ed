"""
gridcast: Free-Provider Forecast Reconciliation

Builds an OpenWeather-shaped forecast (current, 48 hourly, 7 daily, alerts)
from keyless public sources and keeps today's extremes stable across polls.

Architecture:
    grid.py           - weather.gov point -> grid address resolution (cached)
    providers/        - Secondary sources:
                        * nws.py    - forecast Periods, hourly Periods, alerts
                        * sun.py    - sunrise-sunset.org
                        * epa_uv.py - EPA hourly UV index by ZIP code
    pipeline.py       - Per-poll fetch orchestration
    timeseries.py     - validTime decoding and interval lookups
    conditions.py     - Text/coded weather -> OpenWeather condition codes
    aggregator.py     - Normalized forecast assembly
    cache_manager.py  - Revision cache (per-day extremes on disk)
    resilience.py     - Error taxonomy and branch result wrapper
    config.py         - Environment-driven settings

Entry Points:
    main.py           - One-shot poll, writes outputs/forecast.json
"""

__version__ = "1.0.0"
__author__ = "gridcast"

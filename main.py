"""
gridcast: one-shot forecast poll

Resolves the weather.gov grid for a coordinate, polls the free providers
(weather.gov, sunrise-sunset.org, EPA UV), reconciles today's extremes with
the revision cache and writes the normalized forecast as JSON.

Settings come from .env / GRIDCAST_* variables; flags override them.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from gridcast.config import Settings
from gridcast.pipeline import ForecastPipeline, ForecastRequest
from gridcast.resilience import GridcastError

# Load environment variables
load_dotenv()

# Ensure logs directory exists
os.makedirs("logs", exist_ok=True)

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler("logs/gridcast.log", mode='a', encoding='utf-8'),
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

OUTPUT_FILE = Path("outputs/forecast.json")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='gridcast - free-provider forecast for one coordinate'
    )
    parser.add_argument('--lat', type=float, help='Latitude (overrides GRIDCAST_LATITUDE)')
    parser.add_argument('--lon', type=float, help='Longitude (overrides GRIDCAST_LONGITUDE)')
    parser.add_argument('--zip', dest='zipcode', help='ZIP code for the EPA UV index')
    parser.add_argument(
        '--units',
        choices=('imperial', 'metric', 'standard'),
        help='Unit system (overrides GRIDCAST_UNITS)'
    )
    parser.add_argument(
        '--output',
        type=Path,
        default=OUTPUT_FILE,
        help=f'Where to write the forecast JSON (default: {OUTPUT_FILE})'
    )
    return parser.parse_args(argv)


def save_forecast(forecast: dict, output_path: Path) -> Path:
    """Write the forecast JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(forecast, f, indent=2, default=str)
    logger.info(f"[save_forecast] JSON saved to: {output_path}")
    return output_path


def print_summary(forecast: dict) -> None:
    current = forecast.get("current") or {}
    condition = (current.get("weather") or [{}])[0]
    print(f"\n   Now: {current.get('temp')} ({condition.get('description', 'n/a')})")
    for day in forecast.get("daily", []):
        temp = day.get("temp") or {}
        weather = (day.get("weather") or [{}])[0]
        print(
            f"   {day.get('date')}: high {temp.get('max')} / low {temp.get('min')}, "
            f"pop {day.get('pop', 0):.0%}, {weather.get('main', '')}"
        )
    if forecast.get("alerts"):
        print(f"   Alerts: {', '.join(a['event'] for a in forecast['alerts'])}")
    print()


async def main(args=None) -> int:
    """Run one poll and write the result."""
    args = args or parse_args([])
    settings = Settings.from_env()

    latitude = args.lat if args.lat is not None else settings.latitude
    longitude = args.lon if args.lon is not None else settings.longitude
    request = ForecastRequest(
        latitude=latitude,
        longitude=longitude,
        zipcode=args.zipcode or settings.zipcode,
        units=args.units or settings.units,
    )

    start_time = datetime.now(timezone.utc)
    logger.info("=" * 60)
    logger.info(f"gridcast poll - {start_time.isoformat()} - {latitude},{longitude}")
    logger.info("=" * 60)

    pipeline = ForecastPipeline(settings)
    try:
        forecast = await pipeline.poll(request, now=start_time)
    except GridcastError as e:
        logger.error(f"[main] FAILED: {type(e).__name__}: {e}")
        print(f"\nERROR: {e}")
        return 1

    output_path = save_forecast(forecast, args.output)
    print_summary(forecast)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    print(f"   Forecast: {output_path}")
    print(f"   Duration: {duration:.2f} seconds")
    return 0


def cli() -> int:
    """Console-script entry point."""
    return asyncio.run(main(parse_args()))


if __name__ == "__main__":
    sys.exit(cli())

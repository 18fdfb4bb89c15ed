"""
Configuration for gridcast

Settings come from environment variables (a .env file is loaded by the
entry point via python-dotenv). Command-line flags override them.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gridcast.cache_manager import DEFAULT_CACHE_FILE
from gridcast.grid import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Settings] {name}={raw!r} is not a number, ignoring")
        return None


@dataclass
class Settings:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    zipcode: Optional[str] = None
    units: str = "imperial"
    user_agent: str = DEFAULT_USER_AGENT
    cache_file: Path = field(default_factory=lambda: DEFAULT_CACHE_FILE)
    fallback_timezone: str = "America/Chicago"
    http_timeout: float = 15.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from GRIDCAST_* environment variables."""
        timeout = _env_float("GRIDCAST_HTTP_TIMEOUT")
        return cls(
            latitude=_env_float("GRIDCAST_LATITUDE"),
            longitude=_env_float("GRIDCAST_LONGITUDE"),
            zipcode=os.getenv("GRIDCAST_ZIPCODE") or None,
            units=os.getenv("GRIDCAST_UNITS", "imperial"),
            user_agent=os.getenv("GRIDCAST_USER_AGENT", DEFAULT_USER_AGENT),
            cache_file=Path(os.getenv("GRIDCAST_CACHE_FILE", str(DEFAULT_CACHE_FILE))),
            fallback_timezone=os.getenv("GRIDCAST_FALLBACK_TIMEZONE", "America/Chicago"),
            http_timeout=timeout if timeout is not None else 15.0,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

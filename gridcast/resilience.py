"""
Failure Handling for gridcast

Every upstream call in a poll either succeeds, degrades, or aborts the poll.
This module holds the exception taxonomy and the per-branch result wrapper
used by the fetch orchestrator.

Taxonomy:
- ValidationError:      bad request (missing coordinates), nothing fetched
- FatalSourceError:     grid point / grid properties unavailable, poll aborted
- PartialSourceError:   a secondary source failed, its branch becomes None
- CacheCorruptionError: revision cache unreadable, treated as empty
- PersistError:         revision cache could not be written, logged only

Features:
- categorize_error() for log-friendly error classification
- capture() runs one fetch branch and always returns a SourceResult
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class GridcastError(Exception):
    """Base class for pipeline errors."""


class ValidationError(GridcastError):
    """Request is missing required fields."""


class FatalSourceError(GridcastError):
    """A mandatory source (grid point or grid properties) failed."""


class PartialSourceError(GridcastError):
    """A secondary source failed or returned malformed data."""


class CacheCorruptionError(GridcastError):
    """Persisted revision cache could not be parsed."""


class PersistError(GridcastError):
    """Revision cache could not be written."""


class ErrorType(Enum):
    """Categories of errors for tracking."""
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


# Statuses weather.gov returns when shedding load
THROTTLE_STATUSES = {429: "Too Many Requests", 503: "Service Unavailable"}

PARSE_FAILURES = (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError, PartialSourceError)


def categorize_error(exception: BaseException) -> Tuple[ErrorType, str]:
    """Map a failed source branch to the ErrorType and short message shown in the poll summary."""
    detail = str(exception)[:200]

    if isinstance(exception, httpx.TimeoutException):
        return ErrorType.TIMEOUT, f"Timeout: {detail}"

    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        if status in THROTTLE_STATUSES:
            return ErrorType.RATE_LIMIT, f"HTTP {status} {THROTTLE_STATUSES[status]}"
        return ErrorType.API_ERROR, f"HTTP {status}: {detail}"

    if isinstance(exception, httpx.RequestError):
        return ErrorType.API_ERROR, f"Request error: {detail}"

    if isinstance(exception, PARSE_FAILURES):
        return ErrorType.PARSE_ERROR, f"Parse error: {detail}"

    return ErrorType.UNKNOWN, detail


@dataclass
class SourceResult:
    """Outcome of one concurrent fetch branch."""
    name: str
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    elapsed: float = 0.0
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped

    @property
    def status_label(self) -> str:
        if self.skipped:
            return "SKIPPED"
        if self.error is not None:
            return f"FAILED ({self.error_type.value if self.error_type else 'unknown'})"
        return "OK"


def skipped(name: str) -> SourceResult:
    """Result for a branch that was intentionally not fetched."""
    return SourceResult(name=name, skipped=True)


async def capture(name: str, awaitable: Awaitable[Any]) -> SourceResult:
    """
    Await one fetch branch and fold any failure into a SourceResult.

    Never raises: a failing branch becomes a result with data=None so
    siblings in the same gather are unaffected.
    """
    start = time.monotonic()
    try:
        data = await awaitable
    except Exception as e:
        error_type, error_msg = categorize_error(e)
        elapsed = time.monotonic() - start
        logger.warning(
            f"[{name}] Branch failed after {elapsed:.2f}s: "
            f"{error_type.value} - {error_msg}"
        )
        return SourceResult(
            name=name,
            error=error_msg,
            error_type=error_type,
            elapsed=elapsed
        )

    elapsed = time.monotonic() - start
    logger.info(f"[{name}] Fetched in {elapsed:.2f}s")
    return SourceResult(name=name, data=data, elapsed=elapsed)

"""Clock helpers.

All wall-clock reads in the controller go through :func:`now_local` so tests and
field diagnostics can freeze time with ``MAINTDECK_TEST_TIME``.
"""

from __future__ import annotations

import datetime
import logging
import os
from typing import Callable

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]

SECONDS_PER_DAY = 86400.0


def now_local() -> datetime.datetime:
    """Return the current local time as an aware datetime.

    Can be overridden via the MAINTDECK_TEST_TIME environment variable
    (ISO 8601, e.g. "2025-03-01T21:15:00+01:00"). Naive test times are
    interpreted as local time.
    """
    test_time = os.environ.get("MAINTDECK_TEST_TIME")
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is None:
                return dt.astimezone()
            return dt
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse MAINTDECK_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now().astimezone()


def elapsed_days(start: datetime.datetime, end: datetime.datetime) -> float:
    """Fractional days between two aware datetimes (negative if end < start)."""
    return (end - start).total_seconds() / SECONDS_PER_DAY


def parse_timestamp(value: str) -> datetime.datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Accepts the ``Z`` suffix written by JavaScript's ``toISOString()``. Naive
    values are taken as UTC.
    """
    dt = date_parser.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def format_timestamp(value: datetime.datetime) -> str:
    """Serialize an aware datetime as ISO-8601 in UTC with a ``Z`` suffix."""
    utc = value.astimezone(datetime.timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")

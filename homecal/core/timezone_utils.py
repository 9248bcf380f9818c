"""UTC clock and instant normalisation for homecal.

Every instant handled by homecal is UTC. Stored values arrive either aware
or naive; naive values are taken to already be UTC.
"""

from __future__ import annotations

import datetime
import logging
import os

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "HOMECAL_TEST_TIME"


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to be UTC already and get tzinfo attached;
    aware datetimes are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def canonical_instant(value: datetime.datetime) -> datetime.datetime:
    """Canonical form used to key occurrences.

    Rule-generated occurrences carry whole seconds (dateutil drops
    microseconds from DTSTART), so stored exception keys are truncated the
    same way. Both the expander and the exception resolver go through this
    function; an occurrence and its exception match iff their canonical
    instants are equal.
    """
    return ensure_utc(value).replace(microsecond=0)


def format_utc(value: datetime.datetime) -> str:
    """Format an instant as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return canonical_instant(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the HOMECAL_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-03-03T08:00:00Z"). An unparseable value
    is logged and ignored.
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        from dateutil import parser as date_parser

        try:
            return ensure_utc(date_parser.isoparse(test_time))
        except ValueError as e:
            logger.warning("Invalid %s=%r, using wall clock: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)

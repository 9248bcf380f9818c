"""RRULE expansion for homecal.

Expansion runs on naive UTC wall-clock values internally: dateutil refuses
to mix an aware DTSTART with a floating UNTIL, and stored rules come in both
flavours. Rules are therefore parsed with ``ignoretz=True`` against a naive
DTSTART, and every yielded instant is re-attached to UTC through
``canonical_instant``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Optional, Union

from dateutil.rrule import rrule, rruleset, rrulestr

from ..core.exceptions import MalformedRuleError
from ..core.timezone_utils import canonical_instant

logger = logging.getLogger(__name__)

_RULE_PREFIX = "RRULE:"

# Exceptions dateutil raises for unparseable rule text (e.g. KeyError for FREQ=FOO)
_PARSE_ERRORS = (ValueError, KeyError, TypeError, AttributeError, IndexError, OverflowError)


def _naive_utc(value: datetime) -> datetime:
    return canonical_instant(value).replace(tzinfo=None)


def strip_rule_prefix(rule: str) -> str:
    """Return the rule body without a leading ``RRULE:``."""
    text = rule.strip()
    if text.upper().startswith(_RULE_PREFIX):
        text = text[len(_RULE_PREFIX):]
    return text


def _check_positive_parts(rule: str, body: str) -> None:
    # dateutil accepts INTERVAL=0 and then never advances
    for part in body.split(";"):
        key, _, value = part.partition("=")
        key = key.strip().upper()
        if key not in ("INTERVAL", "COUNT"):
            continue
        try:
            number = int(value)
        except ValueError as e:
            raise MalformedRuleError(rule, f"{key} must be an integer") from e
        if number < 1:
            raise MalformedRuleError(rule, f"{key} must be positive")


def parse_rule(rule: Optional[str], dtstart: datetime) -> Union[rrule, rruleset]:
    """Parse RRULE text anchored at ``dtstart``.

    Args:
        rule: RRULE body, with or without the ``RRULE:`` prefix
        dtstart: First occurrence of the series (any tz; treated as UTC)

    Returns:
        dateutil rule object producing naive UTC datetimes

    Raises:
        MalformedRuleError: If the text is empty or dateutil rejects it
    """
    if rule is None or not rule.strip():
        raise MalformedRuleError(rule, "empty rule")

    body = strip_rule_prefix(rule)
    if "FREQ=" not in body.upper():
        raise MalformedRuleError(rule, "missing FREQ")
    _check_positive_parts(rule, body)

    try:
        return rrulestr(body, dtstart=_naive_utc(dtstart), ignoretz=True)
    except _PARSE_ERRORS as e:
        raise MalformedRuleError(rule, str(e)) from e


def validate_rule(rule: Optional[str], dtstart: datetime) -> None:
    """Raise ``MalformedRuleError`` if ``rule`` cannot be expanded."""
    parse_rule(rule, dtstart)


class OccurrenceWindow:
    """Restartable, ascending sequence of occurrence starts inside a window.

    Each iteration walks the rule afresh, so iterating twice yields the same
    instants. Iteration is lazy: occurrences past the window are never
    generated.
    """

    def __init__(self, parsed: Union[rrule, rruleset], window_start: datetime, window_end: datetime) -> None:
        self._parsed = parsed
        self.window_start = canonical_instant(window_start)
        self.window_end = canonical_instant(window_end)

    def __iter__(self) -> Iterator[datetime]:
        if self.window_end <= self.window_start:
            return
        lower = self.window_start.replace(tzinfo=None)
        upper = self.window_end.replace(tzinfo=None)
        previous: Optional[datetime] = None
        for occurrence in self._parsed.xafter(lower, inc=True):
            if occurrence >= upper:
                break
            if occurrence == previous:
                continue
            previous = occurrence
            yield canonical_instant(occurrence)

    def __repr__(self) -> str:
        return f"OccurrenceWindow({self.window_start.isoformat()}, {self.window_end.isoformat()})"


def expand(
    start: datetime,
    end: datetime,
    rule: Optional[str],
    window_start: datetime,
    window_end: datetime,
) -> OccurrenceWindow:
    """Occurrence starts of ``rule`` inside ``[window_start, window_end)``.

    The rule is parsed eagerly so a malformed rule fails here, not on first
    iteration. The returned sequence knows nothing about the event's
    series-end; callers cut that themselves.

    Args:
        start: Series DTSTART (first occurrence)
        end: End of the first occurrence; occurrence ends are derived by
            callers from the series duration, so only start anchors the rule
        rule: RRULE text
        window_start: Inclusive lower bound
        window_end: Exclusive upper bound

    Raises:
        MalformedRuleError: If the rule cannot be parsed
    """
    parsed = parse_rule(rule, start)
    return OccurrenceWindow(parsed, window_start, window_end)


def before_series_end(occurrence_start: datetime, series_end: Optional[datetime]) -> bool:
    """True if an occurrence at ``occurrence_start`` lies inside the series."""
    return series_end is None or canonical_instant(occurrence_start) < canonical_instant(series_end)


def bound_rule(rule: str, dtstart: datetime, series_end: Optional[datetime], all_day: bool = False) -> str:
    """Rule text with the series-end folded in as an ``UNTIL`` part.

    Parts other than UNTIL/COUNT are kept verbatim and in order. An existing
    UNTIL is replaced. A COUNT is replaced by an UNTIL at the earlier of the
    last counted occurrence and ``series_end``, since RFC 5545 forbids both
    parts on one rule.

    For ``all_day`` series UNTIL must be a DATE like the DTSTART it bounds,
    so it names the day of the last occurrence before ``series_end``.

    Raises:
        MalformedRuleError: If the rule cannot be parsed
    """
    body = strip_rule_prefix(rule)
    if series_end is None:
        return body

    parsed = parse_rule(body, dtstart)
    until = canonical_instant(series_end)
    parts = [p for p in body.split(";") if p.strip()]
    keys = [p.split("=", 1)[0].strip().upper() for p in parts]

    if "COUNT" in keys:
        last: Optional[datetime] = None
        for occurrence in parsed:
            last = occurrence
        if last is not None:
            until = min(until, canonical_instant(last))

    kept = [p for p, key in zip(parts, keys) if key not in ("UNTIL", "COUNT")]
    if all_day:
        last_inside = parsed.before(_naive_utc(series_end), inc=False)
        if last_inside is not None:
            until = min(until, canonical_instant(last_inside))
        kept.append(f"UNTIL={until.strftime('%Y%m%d')}")
    else:
        kept.append(f"UNTIL={until.strftime('%Y%m%dT%H%M%SZ')}")
    return ";".join(kept)


def occurs_at(rule: str, dtstart: datetime, instant: datetime) -> bool:
    """True if the rule produces an occurrence exactly at ``instant``.

    Raises:
        MalformedRuleError: If the rule cannot be parsed
    """
    target = _naive_utc(instant)
    parsed = parse_rule(rule, dtstart)
    following = parsed.after(target, inc=True)
    return following is not None and following == target

"""Per-occurrence exception lookup for recurring events.

Exceptions are matched to rule-generated occurrences by exact instant
equality. Keys on both sides go through ``canonical_instant`` so an
occurrence produced by the expander and the exception recorded against it
always hash the same way.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ..core.timezone_utils import canonical_instant
from .models import CalendarEventException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unchanged:
    """The occurrence runs as the rule produced it."""


@dataclass(frozen=True)
class Deleted:
    """The occurrence is suppressed."""


@dataclass(frozen=True)
class Overridden:
    """The occurrence runs with replaced fields.

    ``effective_start`` and ``effective_title`` are None when the override
    leaves that field alone; callers fall back to the series values.
    """

    effective_start: Optional[datetime]
    effective_title: Optional[str]
    effective_end: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = None
    is_all_day: Optional[bool] = None


Resolution = Union[Unchanged, Overridden, Deleted]

UNCHANGED = Unchanged()
DELETED = Deleted()


class ExceptionIndex:
    """Exception records of one event keyed by canonical original start."""

    def __init__(self, exceptions: Iterable[CalendarEventException] = ()) -> None:
        self._by_start: dict[datetime, CalendarEventException] = {}
        for exc in exceptions:
            key = canonical_instant(exc.original_start)
            existing = self._by_start.get(key)
            if existing is not None and existing.is_deleted and not exc.is_deleted:
                # A deletion recorded for the same instant wins over a later override
                continue
            if existing is not None:
                logger.debug("Duplicate exception for %s; keeping the later record", key.isoformat())
            self._by_start[key] = exc

    def __len__(self) -> int:
        return len(self._by_start)

    def __contains__(self, occurrence_start: object) -> bool:
        if not isinstance(occurrence_start, datetime):
            return False
        return canonical_instant(occurrence_start) in self._by_start

    def get(self, occurrence_start: datetime) -> Optional[CalendarEventException]:
        return self._by_start.get(canonical_instant(occurrence_start))

    def deleted_starts(self) -> list[datetime]:
        """Original starts flagged deleted, ascending."""
        return sorted(key for key, exc in self._by_start.items() if exc.is_deleted)

    def overrides(self) -> list[CalendarEventException]:
        """Non-deleted records, ordered by original start."""
        return [self._by_start[key] for key in sorted(self._by_start) if not self._by_start[key].is_deleted]

    def resolve(self, occurrence_start: datetime) -> Resolution:
        return _resolution_for(self.get(occurrence_start))


def _resolution_for(exc: Optional[CalendarEventException]) -> Resolution:
    if exc is None:
        return UNCHANGED
    if exc.is_deleted:
        return DELETED
    return Overridden(
        effective_start=exc.override_start,
        effective_title=exc.override_title,
        effective_end=exc.override_end,
        description=exc.override_description,
        location=exc.override_location,
        is_all_day=exc.override_is_all_day,
    )


def resolve(
    occurrence_start: datetime,
    exceptions: Union[ExceptionIndex, Iterable[CalendarEventException]],
) -> Resolution:
    """Effective state of the occurrence starting at ``occurrence_start``.

    Args:
        occurrence_start: Rule-generated start of the occurrence
        exceptions: The event's exception records, or a prebuilt index when
            resolving many occurrences of the same event

    Returns:
        ``Deleted`` if a matching record is flagged deleted (override fields
        are then ignored), ``Overridden`` for any other matching record,
        ``Unchanged`` when nothing matches exactly
    """
    index = exceptions if isinstance(exceptions, ExceptionIndex) else ExceptionIndex(exceptions)
    return index.resolve(occurrence_start)

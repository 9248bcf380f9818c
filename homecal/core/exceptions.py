"""Exception hierarchy for homecal.

Errors are grouped by the boundary that contains them: malformed rules are
contained per event, dispatch failures per channel and storage failures per
tenant. Lock contention is not an error and has no exception type; see
``homecal.core.locking``.
"""

from __future__ import annotations

from typing import Any


class HomecalError(Exception):
    """Base exception for all homecal errors."""


class MalformedRuleError(HomecalError, ValueError):
    """A recurrence rule could not be parsed.

    Raised by the recurrence expander. Callers that process many events
    (reminder evaluation, feed rendering) catch it per event, log a warning
    and continue with the remaining events.

    Attributes:
        rule: The offending rule text, verbatim
        reason: Parser message describing the failure
    """

    def __init__(self, rule: str | None, reason: str = "") -> None:
        self.rule = rule
        self.reason = reason
        message = f"Malformed recurrence rule {rule!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidEventError(HomecalError, ValueError):
    """A calendar event violates a model invariant (e.g. end before start)."""


class StorageUnavailableError(HomecalError):
    """The backing store could not be reached.

    Propagates out of a tenant's cycle and is caught at the tenant-loop
    boundary of the scheduler so other tenants still run.
    """


class DispatchFailureError(HomecalError):
    """A notification channel failed to deliver one item.

    Attributes:
        dispatcher: Name of the dispatcher that failed
        user_id: Target user of the failed item
    """

    def __init__(self, dispatcher: str, user_id: Any, message: str = "") -> None:
        self.dispatcher = dispatcher
        self.user_id = user_id
        super().__init__(message or f"{dispatcher} failed to deliver to user {user_id}")

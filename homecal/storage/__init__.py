"""Storage implementations."""

from .memory_store import InMemoryCalendarStore, NoopCalendarSync, OutboxEmailSender

__all__ = ["InMemoryCalendarStore", "NoopCalendarSync", "OutboxEmailSender"]

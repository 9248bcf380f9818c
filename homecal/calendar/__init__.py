"""Event model, recurrence expansion and exception resolution."""

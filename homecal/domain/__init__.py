"""Reminder evaluation and dispatch."""

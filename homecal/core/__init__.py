"""Configuration, clock, errors, locking and collaborator protocols."""

"""ticketzetu: event-ticketing backend core (logging pipeline, email queue, auth)."""

__version__ = "0.1.0"

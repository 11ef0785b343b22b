"""A small in-memory key-value server with strings, sorted sets and key expiry."""

__version__ = "0.1.0"
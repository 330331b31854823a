"""Build PostgreSQL queries from REST-style requests and run them, returning JSON."""

__version__ = "0.1.0"

__all__ = [
    "clauses",
    "database",
    "filters",
    "formatters",
    "identifiers",
    "permissions",
    "request",
    "scanner",
    "settings",
    "statements",
]
"""
Store errors

Raised by the query layer. Missing data is never an error here: empty
results come back as empty DataFrames / lists and callers decide what
"no data" means.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for failures talking to the MA data store."""


class ConfigurationError(StoreError):
    """Store is unreachable or misconfigured (no data source, bad credentials)."""


class QueryError(StoreError):
    """The store reported a failure while running a read."""

    def __init__(self, context: str, message: str, sql: Optional[str] = None):
        self.context = context
        self.sql = sql
        super().__init__(f"{context}: {message}")

# MA Leaderboard - Database Layer
#
# DuckDB-based query engine reading the MA store's Parquet tables.
# All reads are parameterized and audited.
#
# Usage:
#     from db import MARepository, get_engine
#
#     repository = MARepository(get_engine())
#     period = repository.latest_enrollment_period()
#     rows = repository.enrollment_rows(period)

from .duckdb_layer import (
    MAQueryEngine,
    query,
    get_engine,
)
from .errors import ConfigurationError, QueryError, StoreError
from .repository import MARepository

__all__ = [
    'MAQueryEngine',
    'query',
    'get_engine',
    'MARepository',
    'ConfigurationError',
    'QueryError',
    'StoreError',
]

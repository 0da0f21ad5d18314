#!/usr/bin/env python3
"""
DuckDB Query Layer

Provides parameterized SQL reads over the MA store's Parquet tables with
audit logging.

Features:
1. Reads Parquet in place, from a local directory or from S3 (no data copying)
2. Every externally influenced value is a bound parameter, never spliced text
3. Query audit logging (who queried what, when, how many rows)
4. One cursor per read, so chunked fetches can run on worker threads

Usage:
    from db.duckdb_layer import MAQueryEngine

    engine = MAQueryEngine(data_dir="/data/ma")

    # Simple query
    df = engine.query("SELECT * FROM ma_contracts WHERE contract_id = ?", ["H1234"])

    # Query with audit
    df, audit_id = engine.query_with_audit(
        "SELECT contract_id, enrollment FROM ma_plan_enrollment WHERE report_year = ?",
        [2025],
        user_id="api",
        context="landscape.enrollment_rows",
    )
"""

import os
import json
import uuid
import hashlib
import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

import boto3
import duckdb
import pandas as pd

from .errors import ConfigurationError, QueryError

logger = logging.getLogger(__name__)

# Configuration
MA_DATA_DIR = os.environ.get("MA_DATA_DIR", "")
S3_BUCKET = os.environ.get("S3_BUCKET", "")
S3_REGION = os.environ.get("AWS_REGION", "us-east-1")
PROCESSED_PREFIX = os.environ.get("PROCESSED_PREFIX", "processed/leaderboard")
AUDIT_PREFIX = "processed/audit/queries"
QUERY_AUDIT_SINK = os.environ.get("MA_QUERY_AUDIT", "log")  # "log" or "s3"

# Tables the core reads. Keys are view names; values describe the source.
TABLES = {
    'ma_plan_enrollment': 'Monthly enrollment by contract/plan (suppressed values are NULL)',
    'ma_plan_landscape': 'Plan landscape: state and SNP indicator per contract/plan',
    'ma_contracts': 'Contract metadata: names, parent organization, SNP and BCBS flags',
    'ma_measures': 'Star measure metadata by year: name, alias, domain, weight',
    'ma_metrics': 'Contract measure values by year: rate, numeric value, star text',
    'summary_ratings': 'Overall, Part C and Part D summary star ratings by contract/year',
}


@lru_cache(maxsize=1)
def _s3_client():
    return boto3.client('s3', region_name=S3_REGION)


def _sql_literal(value: str) -> str:
    """Quote a configuration value for statements that cannot take parameters."""
    return "'" + str(value).replace("'", "''") + "'"


class MAQueryEngine:
    """
    DuckDB-based query engine for the MA leaderboard store.

    All reads go through query()/query_with_audit() and are parameterized.
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        bucket: Optional[str] = None,
        prefix: str = PROCESSED_PREFIX,
    ):
        """
        Initialize the query engine.

        Args:
            data_dir: Local directory holding one Parquet file (or folder) per table
            bucket: S3 bucket used when no data_dir is given
            prefix: Key prefix of the table folders inside the bucket
        """
        self.data_dir = data_dir if data_dir is not None else MA_DATA_DIR
        self.bucket = bucket if bucket is not None else S3_BUCKET
        self.prefix = prefix

        if not self.data_dir and not self.bucket:
            raise ConfigurationError(
                "No data source configured: set MA_DATA_DIR or S3_BUCKET"
            )

        try:
            self.conn = duckdb.connect(":memory:")
        except duckdb.Error as e:
            raise ConfigurationError(f"Could not open DuckDB: {e}") from e

        if not self.data_dir:
            self._setup_s3()
        self.registered_tables = self._register_tables()

    def _setup_s3(self):
        """Configure DuckDB for S3 access."""
        try:
            self.conn.execute("INSTALL httpfs")
            self.conn.execute("LOAD httpfs")
            self.conn.execute(f"SET s3_region = {_sql_literal(S3_REGION)}")

            aws_access_key = os.environ.get("AWS_ACCESS_KEY_ID", "")
            aws_secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY", "")
            if aws_access_key and aws_secret_key:
                self.conn.execute(f"SET s3_access_key_id = {_sql_literal(aws_access_key)}")
                self.conn.execute(f"SET s3_secret_access_key = {_sql_literal(aws_secret_key)}")
            # Otherwise rely on the instance role
        except duckdb.Error as e:
            raise ConfigurationError(f"Could not configure S3 access: {e}") from e

    def _table_source(self, table_name: str) -> str:
        if self.data_dir:
            folder = os.path.join(self.data_dir, table_name)
            if os.path.isdir(folder):
                return os.path.join(folder, '**', '*.parquet')
            return os.path.join(self.data_dir, f'{table_name}.parquet')
        return f's3://{self.bucket}/{self.prefix}/{table_name}/**/*.parquet'

    def _register_tables(self) -> List[str]:
        """
        Register every table as a view over its Parquet source.

        A table that fails to register is left out; reads that touch it raise
        ConfigurationError.
        """
        registered = []
        for table_name in TABLES:
            source = self._table_source(table_name)
            try:
                self.conn.execute(f"""
                    CREATE OR REPLACE VIEW {table_name} AS
                    SELECT * FROM read_parquet({_sql_literal(source)}, hive_partitioning=true)
                """)
                registered.append(table_name)
            except duckdb.Error as e:
                logger.warning("Could not register %s from %s: %s", table_name, source, e)
        return registered

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.

        Args:
            sql: SQL text with ? placeholders
            params: Values bound to the placeholders, in order

        Returns:
            pandas DataFrame with results
        """
        return self._execute(sql, params, context="query")

    def _execute(self, sql: str, params: Optional[Sequence[Any]], context: str) -> pd.DataFrame:
        missing = [table for table in self._extract_tables(sql) if table not in self.registered_tables]
        if missing:
            raise ConfigurationError(
                f"{context}: table source not available: {', '.join(missing)}"
            )

        cursor = self.conn.cursor()
        try:
            return cursor.execute(sql, list(params or [])).fetchdf()
        except duckdb.Error as e:
            raise QueryError(context, str(e), sql=sql) from e
        finally:
            cursor.close()

    def query_with_audit(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        user_id: str = "anonymous",
        context: str = None,
        request_id: str = None
    ) -> Tuple[pd.DataFrame, str]:
        """
        Execute query with audit logging.

        Args:
            sql: SQL text with ? placeholders
            params: Values bound to the placeholders
            user_id: Identifier for who ran the query
            context: Description of why query was run (e.g., "leaderboard.metric_rows")
            request_id: Optional external request ID for correlation

        Returns:
            Tuple of (DataFrame results, audit_id)
        """
        audit_id = str(uuid.uuid4())
        start_time = datetime.now()
        params = list(params or [])

        audit_record = {
            'audit_id': audit_id,
            'timestamp': start_time.isoformat(),
            'user_id': user_id,
            'context': context,
            'request_id': request_id,
            'sql_hash': hashlib.md5(sql.encode()).hexdigest(),
            'param_count': len(params),
            'tables_accessed': self._extract_tables(sql),
        }

        try:
            result = self._execute(sql, params, context=context or "query")
        except QueryError as e:
            audit_record.update({
                'row_count': 0,
                'execution_time_ms': (datetime.now() - start_time).total_seconds() * 1000,
                'status': 'error',
                'error': str(e),
            })
            self._save_query_audit(audit_record)
            raise

        audit_record.update({
            'row_count': len(result),
            'columns': list(result.columns),
            'execution_time_ms': (datetime.now() - start_time).total_seconds() * 1000,
            'status': 'success',
            'error': None,
        })
        self._save_query_audit(audit_record)

        return result, audit_id

    def _extract_tables(self, sql: str) -> List[str]:
        """Extract known table names from SQL query."""
        sql_lower = sql.lower()
        return [table for table in TABLES if table in sql_lower]

    def _save_query_audit(self, audit_record: Dict):
        """Log the audit record, and mirror it to S3 when configured."""
        logger.debug(
            "query %s context=%s status=%s rows=%s %.1fms",
            audit_record['audit_id'][:8],
            audit_record.get('context'),
            audit_record.get('status'),
            audit_record.get('row_count'),
            audit_record.get('execution_time_ms', 0.0),
        )

        if QUERY_AUDIT_SINK != 's3' or not self.bucket:
            return

        try:
            date_str = datetime.now().strftime("%Y/%m/%d")
            s3_key = f"{AUDIT_PREFIX}/{date_str}/{audit_record['audit_id']}.json"
            _s3_client().put_object(
                Bucket=self.bucket,
                Key=s3_key,
                Body=json.dumps(audit_record, indent=2, default=str),
                ContentType='application/json'
            )
        except Exception as e:
            # Audit is best effort; the read itself already succeeded or raised
            logger.warning("Could not save query audit %s: %s", audit_record['audit_id'], e)

    def get_available_tables(self) -> List[Dict]:
        """List the store tables with their registration status."""
        return [
            {
                'name': name,
                'description': description,
                'registered': name in self.registered_tables,
            }
            for name, description in TABLES.items()
        ]

    def close(self):
        """Close the connection."""
        self.conn.close()


# Convenience function for quick queries
def query(sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
    """Quick query without audit (for dev/testing)."""
    engine = MAQueryEngine()
    try:
        return engine.query(sql, params)
    finally:
        engine.close()


# Singleton for API use
_engine_instance = None

def get_engine() -> MAQueryEngine:
    """Get or create singleton query engine."""
    global _engine_instance
    if _engine_instance is None:
        _engine_instance = MAQueryEngine()
    return _engine_instance

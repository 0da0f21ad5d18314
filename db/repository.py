"""
MA Repository

Read-only queries the leaderboard core needs, each returning validated row
records. All values are bound parameters; list filters expand into one
placeholder per value.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .duckdb_layer import MAQueryEngine
from .models import (
    ContractRow,
    EnrollmentPeriod,
    EnrollmentRow,
    MeasureMetadataRow,
    MetricRow,
    PlanLandscapeRow,
    SummaryRatingRow,
)

logger = logging.getLogger(__name__)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN/NA turned into None."""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict(orient='records')


class MARepository:
    """Read-only access to the MA store tables."""

    def __init__(self, engine: MAQueryEngine, user_id: str = "api"):
        self.engine = engine
        self.user_id = user_id

    def _fetch(self, sql: str, params: Sequence[Any], context: str) -> List[Dict[str, Any]]:
        df, _ = self.engine.query_with_audit(
            sql,
            params,
            user_id=self.user_id,
            context=context,
        )
        return _records(df)

    def latest_enrollment_period(self, year: Optional[int] = None) -> Optional[EnrollmentPeriod]:
        """
        Most recent (year, month) with any non-null enrollment.

        Args:
            year: Optional ceiling; only periods in or before this year count
        """
        filters = ["enrollment IS NOT NULL"]
        params: List[Any] = []
        if year is not None:
            filters.append("report_year <= ?")
            params.append(int(year))

        rows = self._fetch(
            f"""
            SELECT report_year, report_month
            FROM ma_plan_enrollment
            WHERE {' AND '.join(filters)}
            ORDER BY report_year DESC, report_month DESC
            LIMIT 1
            """,
            params,
            context="latest_enrollment_period",
        )
        if not rows:
            return None
        return EnrollmentPeriod(year=rows[0]['report_year'], month=rows[0]['report_month'])

    def enrollment_rows(self, period: EnrollmentPeriod) -> List[EnrollmentRow]:
        """All enrollment rows for the period, suppressed (NULL) values included."""
        rows = self._fetch(
            """
            SELECT contract_id, plan_id, report_year, report_month, enrollment, plan_type
            FROM ma_plan_enrollment
            WHERE report_year = ? AND report_month = ?
            """,
            [period.year, period.month],
            context="enrollment_rows",
        )
        return [EnrollmentRow(**row) for row in rows]

    def plan_landscape_rows(self, period: EnrollmentPeriod) -> List[PlanLandscapeRow]:
        """Plan landscape rows for every contract enrolled in the period."""
        rows = self._fetch(
            """
            SELECT contract_id, plan_id, state_abbreviation, special_needs_plan_indicator
            FROM ma_plan_landscape
            WHERE contract_id IN (
                SELECT DISTINCT contract_id
                FROM ma_plan_enrollment
                WHERE report_year = ? AND report_month = ?
            )
            """,
            [period.year, period.month],
            context="plan_landscape_rows",
        )
        return [PlanLandscapeRow(**row) for row in rows]

    def contract_rows(self, period: EnrollmentPeriod) -> List[ContractRow]:
        """Contract metadata for every contract enrolled in the period."""
        rows = self._fetch(
            """
            SELECT contract_id, contract_name, organization_marketing_name,
                   parent_organization, snp_indicator, is_blue_cross_blue_shield
            FROM ma_contracts
            WHERE contract_id IN (
                SELECT DISTINCT contract_id
                FROM ma_plan_enrollment
                WHERE report_year = ? AND report_month = ?
            )
            """,
            [period.year, period.month],
            context="contract_rows",
        )
        return [ContractRow(**row) for row in rows]

    def measure_metadata(self, code: str, max_year: Optional[int] = None) -> Optional[MeasureMetadataRow]:
        """Latest metadata row for a measure code, at or before max_year."""
        filters = ["code = ?"]
        params: List[Any] = [code]
        if max_year is not None:
            filters.append("year <= ?")
            params.append(int(max_year))

        rows = self._fetch(
            f"""
            SELECT code, name, alias, domain, weight, year
            FROM ma_measures
            WHERE {' AND '.join(filters)}
            ORDER BY year DESC NULLS LAST
            LIMIT 1
            """,
            params,
            context="measure_metadata",
        )
        if not rows:
            return None
        return MeasureMetadataRow(**rows[0])

    def measure_codes(self, contract_ids: Sequence[str], max_year: Optional[int] = None) -> List[str]:
        """Distinct measure codes reported by a batch of contracts, at or before max_year."""
        if not contract_ids:
            return []

        filters = ["metric_code IS NOT NULL", f"contract_id IN ({_placeholders(contract_ids)})"]
        params: List[Any] = list(contract_ids)
        if max_year is not None:
            filters.append("year <= ?")
            params.append(int(max_year))

        rows = self._fetch(
            f"""
            SELECT DISTINCT metric_code
            FROM ma_metrics
            WHERE {' AND '.join(filters)}
            ORDER BY metric_code
            """,
            params,
            context="measure_codes",
        )
        return [row['metric_code'] for row in rows]

    def metric_rows(
        self,
        code: str,
        contract_ids: Sequence[str],
        max_year: Optional[int] = None,
    ) -> List[MetricRow]:
        """
        Metric rows for one measure and one batch of contracts.

        Callers are expected to keep batches under the store's ceiling; see
        MeasureValueResolver for the chunking.
        """
        if not contract_ids:
            return []

        filters = ["metric_code = ?", f"contract_id IN ({_placeholders(contract_ids)})"]
        params: List[Any] = [code, *contract_ids]
        if max_year is not None:
            filters.append("year <= ?")
            params.append(int(max_year))

        rows = self._fetch(
            f"""
            SELECT contract_id, metric_code, year, rate_percent, value_numeric,
                   value_unit, star_rating
            FROM ma_metrics
            WHERE {' AND '.join(filters)}
            ORDER BY contract_id, year DESC
            """,
            params,
            context="metric_rows",
        )
        return [MetricRow(**row) for row in rows]

    def summary_rating_rows(self, contract_ids: Sequence[str]) -> List[SummaryRatingRow]:
        """Summary star ratings (all years) for a batch of contracts."""
        if not contract_ids:
            return []

        rows = self._fetch(
            f"""
            SELECT contract_id, year,
                   overall_rating_numeric, overall_rating,
                   part_c_summary_numeric, part_c_summary,
                   part_d_summary_numeric, part_d_summary
            FROM summary_ratings
            WHERE contract_id IN ({_placeholders(contract_ids)})
            """,
            list(contract_ids),
            context="summary_rating_rows",
        )
        return [SummaryRatingRow(**row) for row in rows]

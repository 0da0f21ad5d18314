"""
Shared fixtures: an in-memory stand-in for MARepository and a small MA
market used across the service and API tests.

Market (period 2025-01):
    H1111 Alpha Health   Alpha Corp  CA 600 / TX 400       -> CA, share 0.6
    H2222 Beta Care      Beta Inc    all enrollment NULL   -> FL by plan count, no share
    H3333 Gamma Plan     Alpha Corp  TX 300 (SNP) + TX 200 -> TX, share 1.0, BCBS
    S4444 Delta Rx       Delta       NY 5000               -> NY, share 1.0
    H5555 Epsilon        Beta Inc    1500, no landscape    -> no state
"""

import threading
from typing import List, Optional, Sequence

import pytest

from db.models import (
    ContractRow,
    EnrollmentPeriod,
    EnrollmentRow,
    MeasureMetadataRow,
    MetricRow,
    PlanLandscapeRow,
    SummaryRatingRow,
)


class FakeRepository:
    """Serves MARepository's read methods from in-memory row lists."""

    def __init__(
        self,
        enrollment: Sequence[EnrollmentRow] = (),
        plans: Sequence[PlanLandscapeRow] = (),
        contracts: Sequence[ContractRow] = (),
        measures: Sequence[MeasureMetadataRow] = (),
        metrics: Sequence[MetricRow] = (),
        ratings: Sequence[SummaryRatingRow] = (),
    ):
        self.enrollment = list(enrollment)
        self.plans = list(plans)
        self.contracts = list(contracts)
        self.measures = list(measures)
        self.metrics = list(metrics)
        self.ratings = list(ratings)
        self.metric_calls: List[List[str]] = []
        self.summary_calls: List[List[str]] = []
        self._lock = threading.Lock()

    def latest_enrollment_period(self, year: Optional[int] = None) -> Optional[EnrollmentPeriod]:
        periods = {
            (row.report_year, row.report_month)
            for row in self.enrollment
            if row.enrollment is not None and (year is None or row.report_year <= year)
        }
        if not periods:
            return None
        latest = max(periods)
        return EnrollmentPeriod(year=latest[0], month=latest[1])

    def enrollment_rows(self, period: EnrollmentPeriod) -> List[EnrollmentRow]:
        return [
            row for row in self.enrollment
            if row.report_year == period.year and row.report_month == period.month
        ]

    def _enrolled(self, period: EnrollmentPeriod) -> set:
        return {row.contract_id for row in self.enrollment_rows(period)}

    def plan_landscape_rows(self, period: EnrollmentPeriod) -> List[PlanLandscapeRow]:
        enrolled = self._enrolled(period)
        return [row for row in self.plans if row.contract_id in enrolled]

    def contract_rows(self, period: EnrollmentPeriod) -> List[ContractRow]:
        enrolled = self._enrolled(period)
        return [row for row in self.contracts if row.contract_id in enrolled]

    def measure_metadata(self, code: str, max_year: Optional[int] = None) -> Optional[MeasureMetadataRow]:
        candidates = [
            row for row in self.measures
            if row.code == code and (max_year is None or (row.year is not None and row.year <= max_year))
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda row: row.year if row.year is not None else -1)

    def measure_codes(self, contract_ids: Sequence[str], max_year: Optional[int] = None) -> List[str]:
        wanted = set(contract_ids)
        return sorted({
            row.metric_code for row in self.metrics
            if row.metric_code
            and row.contract_id in wanted
            and (max_year is None or (row.year is not None and row.year <= max_year))
        })

    def metric_rows(self, code: str, contract_ids: Sequence[str], max_year: Optional[int] = None) -> List[MetricRow]:
        with self._lock:
            self.metric_calls.append(list(contract_ids))
        wanted = set(contract_ids)
        return [
            row for row in self.metrics
            if row.metric_code == code
            and row.contract_id in wanted
            and (max_year is None or (row.year is not None and row.year <= max_year))
        ]

    def summary_rating_rows(self, contract_ids: Sequence[str]) -> List[SummaryRatingRow]:
        self.summary_calls.append(list(contract_ids))
        wanted = set(contract_ids)
        return [row for row in self.ratings if row.contract_id in wanted]


def enrollment(contract_id, plan_id, value, year=2025, month=1, plan_type="HMO"):
    return EnrollmentRow(
        contract_id=contract_id,
        plan_id=plan_id,
        report_year=year,
        report_month=month,
        enrollment=value,
        plan_type=plan_type,
    )


def plan(contract_id, plan_id, state, snp=None):
    return PlanLandscapeRow(
        contract_id=contract_id,
        plan_id=plan_id,
        state_abbreviation=state,
        special_needs_plan_indicator=snp,
    )


def contract(contract_id, name, parent, blue=False, snp=None, marketing=None):
    return ContractRow(
        contract_id=contract_id,
        contract_name=name,
        organization_marketing_name=marketing,
        parent_organization=parent,
        snp_indicator=snp,
        is_blue_cross_blue_shield=blue,
    )


def rating(contract_id, year, overall=None, part_c=None, part_d=None, overall_text=None, part_c_text=None):
    return SummaryRatingRow(
        contract_id=contract_id,
        year=year,
        overall_rating_numeric=overall,
        overall_rating=overall_text,
        part_c_summary_numeric=part_c,
        part_c_summary=part_c_text,
        part_d_summary_numeric=part_d,
    )


def metric(contract_id, code, year, rate=None, numeric=None, unit=None, star=None):
    return MetricRow(
        contract_id=contract_id,
        metric_code=code,
        year=year,
        rate_percent=rate,
        value_numeric=numeric,
        value_unit=unit,
        star_rating=star,
    )


@pytest.fixture
def market_rows():
    return {
        'enrollment': [
            enrollment("H1111", "001", 600),
            enrollment("H1111", "002", 400),
            enrollment("H2222", "001", None),
            enrollment("H2222", "002", None),
            enrollment("H3333", "001", 300, plan_type="Dual SNP"),
            enrollment("H3333", "002", 200),
            enrollment("S4444", "001", 5000, plan_type="PDP"),
            enrollment("H5555", "001", 1500),
            # Older period, superseded
            enrollment("H1111", "001", 9999, year=2024, month=12),
        ],
        'plans': [
            plan("H1111", "001", "CA"),
            plan("H1111", "002", "TX"),
            plan("H2222", "001", "FL"),
            plan("H2222", "002", "FL"),
            plan("H2222", "003", "GA"),
            plan("H3333", "001", "TX"),
            plan("H3333", "002", "TX"),
            plan("S4444", "001", "NY"),
        ],
        'contracts': [
            contract("H1111", "Alpha Health", "Alpha Corp", marketing="Alpha Health Plans"),
            contract("H2222", "Beta Care", "Beta Inc"),
            contract("H3333", "Gamma Plan", "Alpha Corp", blue=True),
            contract("S4444", "Delta Rx", "Delta"),
            contract("H5555", "Epsilon", "Beta Inc"),
        ],
        'measures': [
            MeasureMetadataRow(code="C01", name="Breast Cancer Screening", domain="Staying Healthy", weight=1, year=2025),
            MeasureMetadataRow(code="C01", name="Breast Cancer Screening (old)", year=2024),
            MeasureMetadataRow(code="C28", name="Members Choosing to Leave the Plan", weight=2, year=2025),
        ],
        'metrics': [
            metric("H1111", "C01", 2025, rate=80),
            metric("H1111", "C01", 2025, star="4"),
            metric("H1111", "C01", 2024, rate=75),
            metric("H3333", "C01", 2025, rate=70),
            metric("H3333", "C01", 2024, rate=72),
            metric("H2222", "C01", 2025, star="Not enough data available"),
            metric("H1111", "C28", 2025, rate=10),
            metric("H1111", "C28", 2024, rate=12),
            metric("H3333", "C28", 2025, rate=15),
            metric("H3333", "C28", 2024, rate=11),
        ],
        'ratings': [
            rating("H1111", 2025, overall=4.5, part_c=4.0, part_d=3.5),
            rating("H1111", 2024, overall=4.0, part_c=4.0, part_d=4.0),
            rating("H2222", 2025, overall_text="3"),
            rating("H2222", 2024, overall=3.5),
            rating("H3333", 2025, overall=4.5, part_c_text="4.5 out of 5 stars"),
            rating("H3333", 2024, overall=3.5),
            rating("H5555", 2025, overall_text="Plan too new to be measured"),
            rating("H5555", 2024, overall=4.0),
            rating("S4444", 2025, overall=3.5),
        ],
    }


@pytest.fixture
def repository(market_rows):
    return FakeRepository(**market_rows)

"""
States Service

Two views over the filtered contract landscape:

- state rollup: state-eligible contracts grouped by dominant state, with
  enrollment, average overall rating and an optional measure average
- contract comparison: cohort statistics for one state (or "US" for the
  whole country), optionally positioning a target contract in that cohort
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from db import get_engine
from db.repository import MARepository

from .enrollment_levels import format_enrollment
from .filters import NATIONAL_STATE_CODE, ContractSelection, filter_contracts, state_name
from .inverse_measures import measure_direction
from .landscape_service import EnrollmentLandscapeBuilder
from .leaderboard_service import SUMMARY_SECTIONS, SummarySnapshots, fetch_summary_snapshots
from .measure_service import MeasureValueResolver, collect_measure_values
from .statistics import compute_summary_stats, percentile_rank
from .types import ContractLandscape, ContractMeasureValue, MeasureDetails, SummaryStats

logger = logging.getLogger(__name__)

METRIC_KEYS = [key for key, _, _ in SUMMARY_SECTIONS]


@dataclass
class MeasureSummary:
    code: str
    name: str
    domain: Optional[str]
    weight: Optional[float]
    unit: Optional[str]
    value_type: str
    latest_year: Optional[int]
    contracts_with_data: int
    stats: SummaryStats
    direction: str = "higher"

    @classmethod
    def from_details(cls, details: MeasureDetails, values: Sequence[float]) -> "MeasureSummary":
        return cls(
            code=details.code,
            name=details.name,
            domain=details.domain,
            weight=details.weight,
            unit=details.unit,
            value_type=details.value_type,
            latest_year=details.latest_year,
            contracts_with_data=details.contracts_with_data,
            stats=compute_summary_stats(values),
            direction=measure_direction(details.name, details.code),
        )


# === State rollup ===

@dataclass
class StateMeasureAverage:
    code: str
    average: Optional[float]
    unit: Optional[str]
    value_type: str
    contracts_with_measure: int


@dataclass
class StateSummary:
    code: str
    name: str
    total_enrollment: Optional[int]
    formatted_enrollment: str
    contract_count: int
    average_star_rating: Optional[float]
    contracts_with_stars: int
    measure: Optional[StateMeasureAverage] = None


@dataclass
class StateRollup:
    states: List[StateSummary] = field(default_factory=list)
    measure: Optional[MeasureSummary] = None
    data_year: Optional[int] = None


def group_by_dominant_state(contracts: Sequence[ContractLandscape]) -> Dict[str, List[ContractLandscape]]:
    """State-eligible contracts keyed by dominant state."""
    grouped: Dict[str, List[ContractLandscape]] = {}
    for record in contracts:
        if not record.state_eligible or not record.dominant_state:
            continue
        grouped.setdefault(record.dominant_state, []).append(record)
    return grouped


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def summarize_state(
    code: str,
    contracts: List[ContractLandscape],
    ratings: Optional[SummarySnapshots],
    measure: Optional[MeasureDetails],
) -> StateSummary:
    total = sum(record.total_enrollment or 0 for record in contracts)
    total_enrollment = total if total > 0 else None

    stars: List[float] = []
    if ratings is not None:
        for record in contracts:
            current = ratings.current('overall', record.contract_id)
            if current is not None:
                stars.append(current)

    measure_average = None
    if measure is not None:
        values = collect_measure_values([record.contract_id for record in contracts], measure.contract_values)
        measure_average = StateMeasureAverage(
            code=measure.code,
            average=_mean(values),
            unit=measure.unit,
            value_type=measure.value_type,
            contracts_with_measure=len(values),
        )

    return StateSummary(
        code=code,
        name=state_name(code) or code,
        total_enrollment=total_enrollment,
        formatted_enrollment=format_enrollment(total_enrollment),
        contract_count=len(contracts),
        average_star_rating=_mean(stars),
        contracts_with_stars=len(stars),
        measure=measure_average,
    )


def sort_states(states: List[StateSummary]) -> List[StateSummary]:
    """Largest enrollment first (suppressed counts as -1), then state code."""
    return sorted(
        states,
        key=lambda state: (
            -(state.total_enrollment if state.total_enrollment is not None else -1),
            state.code,
        ),
    )


# === Contract comparison ===

@dataclass
class MetricPoint:
    current: Optional[float] = None
    prior: Optional[float] = None
    delta: Optional[float] = None


@dataclass
class ContractComparisonRow:
    contract_id: str
    label: str
    parent_organization: Optional[str]
    dominant_state: Optional[str]
    dominant_share: Optional[float]
    is_blue_cross_blue_shield: bool
    total_enrollment: Optional[int]
    metrics: Dict[str, MetricPoint]
    measure: Optional[ContractMeasureValue] = None


@dataclass
class TargetContract:
    contract: ContractComparisonRow
    percentiles: Dict[str, Optional[float]]
    measure_percentile: Optional[float] = None


@dataclass
class ContractComparison:
    geography_type: str  # state | national
    code: str
    name: str
    filters: Dict[str, object]
    data_year: Optional[int]
    prior_year: Optional[int]
    contract_count: int
    cohort: Dict[str, SummaryStats]
    contracts: List[ContractComparisonRow] = field(default_factory=list)
    target: Optional[TargetContract] = None
    measure: Optional[MeasureSummary] = None


def metric_points(contract_id: str, ratings: SummarySnapshots) -> Dict[str, MetricPoint]:
    points = {}
    for key in METRIC_KEYS:
        snapshot = ratings.metrics[key].get(contract_id)
        if snapshot is None:
            points[key] = MetricPoint()
        else:
            points[key] = MetricPoint(current=snapshot.current, prior=snapshot.prior, delta=snapshot.delta)
    return points


def comparison_row(
    record: ContractLandscape,
    ratings: SummarySnapshots,
    measure: Optional[MeasureDetails] = None,
) -> ContractComparisonRow:
    return ContractComparisonRow(
        contract_id=record.contract_id,
        label=f"{record.contract_id} - {record.display_name}",
        parent_organization=record.parent_organization,
        dominant_state=record.dominant_state,
        dominant_share=record.dominant_share,
        is_blue_cross_blue_shield=record.is_blue_cross_blue_shield,
        total_enrollment=record.total_enrollment,
        metrics=metric_points(record.contract_id, ratings),
        measure=measure.contract_values.get(record.contract_id) if measure else None,
    )


def cohort_values(contract_ids: Sequence[str], ratings: SummarySnapshots, key: str) -> List[float]:
    values = []
    for contract_id in contract_ids:
        current = ratings.current(key, contract_id)
        if current is not None:
            values.append(current)
    return values


def measure_ceiling(ratings: SummarySnapshots, year: Optional[int]) -> Optional[int]:
    """Measures resolve as of the rating data year, else the requested year."""
    return ratings.data_year if ratings.data_year is not None else year


class StatesService:
    """State rollups and state cohort comparisons over the contract landscape."""

    def __init__(
        self,
        repository: MARepository,
        landscape_builder: Optional[EnrollmentLandscapeBuilder] = None,
        measure_resolver: Optional[MeasureValueResolver] = None,
    ):
        self.repository = repository
        self.landscape_builder = landscape_builder or EnrollmentLandscapeBuilder(repository)
        self.measure_resolver = measure_resolver or MeasureValueResolver(repository)

    def state_rollup(
        self,
        selection: ContractSelection,
        measure_code: Optional[str] = None,
        year: Optional[int] = None,
    ) -> StateRollup:
        """
        Per-state rollup of the filtered contracts.

        The selection's state option is ignored; every state is rolled up.
        """
        snapshot = self.landscape_builder.build(year)
        if snapshot.period is None:
            return StateRollup()

        everywhere = selection.model_copy(update={'state_option': 'all', 'state': None})
        grouped = group_by_dominant_state(filter_contracts(snapshot.contracts.values(), everywhere))
        contract_ids = sorted({record.contract_id for records in grouped.values() for record in records})
        if not contract_ids:
            return StateRollup()

        ratings = fetch_summary_snapshots(self.repository, contract_ids, year)
        measure = None
        if measure_code:
            measure = self.measure_resolver.resolve(
                measure_code, contract_ids, as_of_year=measure_ceiling(ratings, year),
            )

        states = sort_states([
            summarize_state(code, records, ratings, measure)
            for code, records in grouped.items()
        ])
        summary = None
        if measure is not None:
            summary = MeasureSummary.from_details(
                measure, collect_measure_values(contract_ids, measure.contract_values)
            )

        logger.info("State rollup: %d states from %d contracts", len(states), len(contract_ids))
        return StateRollup(states=states, measure=summary, data_year=ratings.data_year)

    def contract_comparison(
        self,
        state: str,
        selection: ContractSelection,
        contract_id: Optional[str] = None,
        measure_code: Optional[str] = None,
        year: Optional[int] = None,
    ) -> Optional[ContractComparison]:
        """
        Cohort statistics for a state (or national) and an optional target.

        Args:
            state: Two-letter state code, or "US" for every contract
            selection: Plan type / series / enrollment / BCBS filters
            contract_id: Optional target contract to rank within the cohort
            measure_code: Optional measure to summarize alongside the ratings
            year: Optional enrollment period ceiling

        Returns:
            ContractComparison, or None when there is no enrollment period

        Raises:
            ValueError: unknown state code
        """
        name = state_name(state)
        if name is None:
            raise ValueError(f"Unknown state code '{state}'")

        national = state == NATIONAL_STATE_CODE
        cohort_selection = selection.model_copy(update={
            'state_option': 'all' if national else 'state',
            'state': None if national else state,
        })

        snapshot = self.landscape_builder.build(year)
        if snapshot.period is None:
            return None

        cohort = filter_contracts(snapshot.contracts.values(), cohort_selection)
        cohort_ids = [record.contract_id for record in cohort]
        filters = {**cohort_selection.model_dump(), 'measure_code': measure_code}

        ratings = fetch_summary_snapshots(self.repository, cohort_ids, year) if cohort_ids else SummarySnapshots()
        measure = None
        if measure_code and cohort_ids:
            measure = self.measure_resolver.resolve(
                measure_code, cohort_ids, as_of_year=measure_ceiling(ratings, year),
            )

        values = {key: cohort_values(cohort_ids, ratings, key) for key in METRIC_KEYS}
        measure_values = collect_measure_values(cohort_ids, measure.contract_values) if measure else []

        comparison = ContractComparison(
            geography_type='national' if national else 'state',
            code=state,
            name=name,
            filters=filters,
            data_year=ratings.data_year,
            prior_year=ratings.prior_year,
            contract_count=len(cohort),
            cohort={key: compute_summary_stats(values[key]) for key in METRIC_KEYS},
            contracts=[comparison_row(record, ratings, measure) for record in cohort],
            measure=MeasureSummary.from_details(measure, measure_values) if measure else None,
        )

        if contract_id:
            target = next((row for row in comparison.contracts if row.contract_id == contract_id), None)
            if target is None:
                logger.info("Target contract %s not in the %s cohort", contract_id, state)
            else:
                measure_value = target.measure.value if target.measure else None
                comparison.target = TargetContract(
                    contract=target,
                    percentiles={
                        key: percentile_rank(values[key], target.metrics[key].current)
                        for key in METRIC_KEYS
                    },
                    measure_percentile=percentile_rank(measure_values, measure_value),
                )

        return comparison

    def measure_overview(
        self,
        measure_code: str,
        selection: ContractSelection,
        year: Optional[int] = None,
    ) -> Optional[MeasureSummary]:
        """National summary of one measure over the filtered contracts; None when it has no data."""
        snapshot = self.landscape_builder.build(year)
        if snapshot.period is None:
            return None

        everywhere = selection.model_copy(update={'state_option': 'all', 'state': None})
        contract_ids = [record.contract_id for record in filter_contracts(snapshot.contracts.values(), everywhere)]
        details = self.measure_resolver.resolve(measure_code, contract_ids, as_of_year=year)
        if details is None:
            return None
        return MeasureSummary.from_details(details, collect_measure_values(contract_ids, details.contract_values))


# Singleton instance
_service_instance = None

def get_states_service() -> StatesService:
    """Get or create singleton states service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = StatesService(MARepository(get_engine()))
    return _service_instance

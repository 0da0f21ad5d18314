"""
Leaderboard Service

Ranks contracts (or parent organizations) on summary star ratings and on
individual measures. Each section carries three lists:

- top performers: best current value first
- biggest movers: most improved current - prior delta first
- biggest decliners: most worsened delta first

Ties always break on entity id ascending and ranks are 1-based ordinals, so
the same snapshot of rows always yields the same leaderboard.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from db import get_engine
from db.models import SummaryRatingRow
from db.repository import MARepository

from .filters import (
    ORGANIZATION_BUCKET_RULES,
    ContractSelection,
    OrganizationSelection,
    filter_contracts,
)
from .inverse_measures import measure_direction
from .landscape_service import EnrollmentLandscapeBuilder
from .measure_service import METRIC_CHUNK_SIZE, MeasureValueResolver, chunked, finite_number, parse_star_rating
from .types import (
    ContractLandscape,
    ContractMeasureValue,
    LeaderboardEntry,
    LeaderboardResponse,
    LeaderboardSection,
    MeasureDetails,
    MetricSnapshot,
)

logger = logging.getLogger(__name__)

EMPTY_LABEL = "—"

# (section key, title, rating field prefix on summary_ratings)
SUMMARY_SECTIONS = [
    ('overall', "Overall Star Rating", 'overall_rating'),
    ('partC', "Part C Star Rating", 'part_c_summary'),
    ('partD', "Part D Star Rating", 'part_d_summary'),
]

METRIC_TYPE_BY_VALUE_TYPE = {'percent': 'rate', 'star': 'stars', 'numeric': 'numeric'}

# Value types a domain can average, in preference order
DOMAIN_VALUE_TYPES = ('percent', 'star')
OTHER_DOMAIN = "Other"

_SLUG_SEPARATORS = re.compile(r'[^a-z0-9]+')


# === Summary ratings ===

@dataclass
class SummarySnapshots:
    """Per-contract current/prior summary ratings keyed by section key."""
    metrics: Dict[str, Dict[str, MetricSnapshot]] = field(
        default_factory=lambda: {key: {} for key, _, _ in SUMMARY_SECTIONS}
    )
    data_year: Optional[int] = None
    prior_year: Optional[int] = None

    def current(self, key: str, entity_id: str) -> Optional[float]:
        snapshot = self.metrics[key].get(entity_id)
        return snapshot.current if snapshot else None


def rating_value(row: SummaryRatingRow, prefix: str) -> Optional[float]:
    """Numeric rating column first, text column parsed as a fallback."""
    numeric = finite_number(getattr(row, f"{prefix}_numeric"))
    if numeric is not None:
        return numeric
    return parse_star_rating(getattr(row, prefix))


def build_summary_snapshots(
    rows: Iterable[SummaryRatingRow],
    preferred_year: Optional[int] = None,
) -> SummarySnapshots:
    """
    Current (data year) and prior (next lower year) ratings per contract.

    The data year is the latest rating year at or before preferred_year.
    """
    rows = [row for row in rows if row.contract_id and row.year is not None]
    years = sorted({row.year for row in rows}, reverse=True)
    if preferred_year is not None:
        years = [year for year in years if year <= preferred_year]

    snapshots = SummarySnapshots()
    if not years:
        return snapshots

    snapshots.data_year = years[0]
    snapshots.prior_year = years[1] if len(years) > 1 else None

    for row in rows:
        if row.year not in (snapshots.data_year, snapshots.prior_year):
            continue
        for key, _, prefix in SUMMARY_SECTIONS:
            value = rating_value(row, prefix)
            snapshot = snapshots.metrics[key].setdefault(
                row.contract_id,
                MetricSnapshot(current_year=snapshots.data_year, prior_year=snapshots.prior_year),
            )
            # A duplicate row without a rating never erases one that has it
            if value is None:
                continue
            if row.year == snapshots.data_year:
                snapshot.current = value
            else:
                snapshot.prior = value

    return snapshots


def fetch_summary_snapshots(
    repository: MARepository,
    contract_ids: Sequence[str],
    preferred_year: Optional[int] = None,
    chunk_size: int = METRIC_CHUNK_SIZE,
) -> SummarySnapshots:
    ids = sorted(set(contract_ids))
    rows: List[SummaryRatingRow] = []
    for chunk in chunked(ids, chunk_size):
        rows.extend(repository.summary_rating_rows(chunk))
    return build_summary_snapshots(rows, preferred_year)


# === Organizations ===

@dataclass
class OrganizationRecord:
    organization: str
    contract_ids: List[str] = field(default_factory=list)
    blue_contract_count: int = 0

    @property
    def contract_count(self) -> int:
        return len(self.contract_ids)

    @property
    def has_blue_contracts(self) -> bool:
        return self.blue_contract_count > 0


def build_organization_records(landscapes: Dict[str, ContractLandscape]) -> Dict[str, OrganizationRecord]:
    """Group contracts under their (non-blank) parent organization."""
    organizations: Dict[str, OrganizationRecord] = {}
    for contract_id in sorted(landscapes):
        record = landscapes[contract_id]
        parent = (record.parent_organization or "").strip()
        if not parent:
            continue

        organization = organizations.setdefault(parent, OrganizationRecord(organization=parent))
        organization.contract_ids.append(contract_id)
        if record.is_blue_cross_blue_shield:
            organization.blue_contract_count += 1

    return organizations


def filter_organizations(
    organizations: Iterable[OrganizationRecord],
    selection: OrganizationSelection,
) -> List[OrganizationRecord]:
    rule = ORGANIZATION_BUCKET_RULES[selection.bucket]
    kept = [org for org in organizations if rule(org.contract_count)]
    if selection.blue_only:
        kept = [org for org in kept if org.has_blue_contracts]
    return kept


def _enrollment_weight(landscape: Optional[ContractLandscape]) -> float:
    total = landscape.total_enrollment if landscape else None
    return float(total) if total is not None and total > 0 else 1.0


def aggregate_to_organizations(
    snapshots: Dict[str, MetricSnapshot],
    organizations: Iterable[OrganizationRecord],
    landscapes: Dict[str, ContractLandscape],
    data_year: Optional[int] = None,
    prior_year: Optional[int] = None,
) -> Dict[str, MetricSnapshot]:
    """
    Enrollment-weighted organization values.

    Each contract weighs its total enrollment, or 1 when that is suppressed
    or zero. Current and prior values average independently.
    """
    aggregated: Dict[str, MetricSnapshot] = {}

    for organization in organizations:
        current_sum = current_weight = 0.0
        prior_sum = prior_weight = 0.0
        current_year: Optional[int] = None
        latest_prior_year: Optional[int] = None

        for contract_id in organization.contract_ids:
            snapshot = snapshots.get(contract_id)
            if snapshot is None:
                continue
            weight = _enrollment_weight(landscapes.get(contract_id))

            if snapshot.current is not None:
                current_sum += snapshot.current * weight
                current_weight += weight
                if snapshot.current_year is not None:
                    current_year = max(current_year or snapshot.current_year, snapshot.current_year)

            if snapshot.prior is not None:
                prior_sum += snapshot.prior * weight
                prior_weight += weight
                if snapshot.prior_year is not None:
                    latest_prior_year = max(latest_prior_year or snapshot.prior_year, snapshot.prior_year)

        current = current_sum / current_weight if current_weight > 0 else None
        prior = prior_sum / prior_weight if prior_weight > 0 else None
        if current is None and prior is None:
            continue

        aggregated[organization.organization] = MetricSnapshot(
            current=current,
            prior=prior,
            current_year=current_year if current_year is not None else data_year,
            prior_year=latest_prior_year if latest_prior_year is not None else prior_year,
        )

    return aggregated


# === Ranking ===

def rank_by_value(
    entries: Iterable[LeaderboardEntry],
    limit: int,
    ascending: bool = False,
) -> List[LeaderboardEntry]:
    """Entries with a value, best first, ties by entity id, truncated to limit."""
    ranked = [entry for entry in entries if entry.value is not None]
    ranked.sort(key=lambda entry: (entry.value if ascending else -entry.value, entry.entity_id))
    return [replace(entry, rank=position) for position, entry in enumerate(ranked[:limit], start=1)]


def rank_by_delta(
    entries: Iterable[LeaderboardEntry],
    limit: int,
    ascending: bool,
) -> List[LeaderboardEntry]:
    ranked = [entry for entry in entries if entry.delta is not None]
    ranked.sort(key=lambda entry: (entry.delta if ascending else -entry.delta, entry.entity_id))
    return [replace(entry, rank=position) for position, entry in enumerate(ranked[:limit], start=1)]


def format_metric(value: Optional[float], metric_type: str) -> str:
    if value is None:
        return EMPTY_LABEL
    return f"{value:.1f}%" if metric_type == 'rate' else f"{value:.1f}"


def format_delta(value: Optional[float], metric_type: str) -> str:
    if value is None:
        return EMPTY_LABEL
    prefix = "+" if value > 0 else ""
    return f"{prefix}{format_metric(value, metric_type)}"


def _finalize(
    entries: List[LeaderboardEntry],
    metric_type: str,
    data_year: Optional[int],
    prior_year: Optional[int],
) -> List[LeaderboardEntry]:
    return [
        replace(
            entry,
            value_label=format_metric(entry.value, metric_type),
            prior_label=format_metric(entry.prior_value, metric_type),
            delta_label=format_delta(entry.delta, metric_type),
            report_year=entry.report_year if entry.report_year is not None else data_year,
            prior_year=entry.prior_year if entry.prior_year is not None else prior_year,
        )
        for entry in entries
    ]


def unit_label(metric_type: str, unit: Optional[str] = None) -> str:
    if metric_type == 'stars':
        return "Stars"
    if metric_type == 'rate':
        return "%"
    return unit or ""


def contract_entry(record: ContractLandscape, snapshot: MetricSnapshot) -> LeaderboardEntry:
    plan_name = record.marketing_name or record.contract_name or "Unknown"
    return LeaderboardEntry(
        entity_id=record.contract_id,
        entity_label=f"{record.contract_id} - {plan_name}",
        value=snapshot.current,
        prior_value=snapshot.prior,
        delta=snapshot.delta,
        parent_organization=record.parent_organization,
        dominant_state=record.dominant_state,
        dominant_share=record.dominant_share,
        state_eligible=record.state_eligible,
        total_enrollment=record.total_enrollment,
        is_blue_cross_blue_shield=record.is_blue_cross_blue_shield,
        report_year=snapshot.current_year,
        prior_year=snapshot.prior_year,
        metadata={'contract_id': record.contract_id},
    )


def organization_entry(record: OrganizationRecord, snapshot: MetricSnapshot) -> LeaderboardEntry:
    return LeaderboardEntry(
        entity_id=record.organization,
        entity_label=record.organization,
        value=snapshot.current,
        prior_value=snapshot.prior,
        delta=snapshot.delta,
        report_year=snapshot.current_year,
        prior_year=snapshot.prior_year,
        metadata={
            'contract_count': record.contract_count,
            'blue_contract_count': record.blue_contract_count,
        },
    )


def build_section(
    key: str,
    title: str,
    metric_type: str,
    entries: List[LeaderboardEntry],
    limit: int,
    data_year: Optional[int] = None,
    prior_year: Optional[int] = None,
    direction: str = 'higher',
    unit: Optional[str] = None,
) -> LeaderboardSection:
    """
    Rank one metric into top performers, movers and decliners.

    Args:
        key: Section key (e.g. "overall", "measure-C01")
        title: Display title
        metric_type: stars | rate | numeric
        entries: One draft entry per entity (value, prior_value, delta set)
        limit: Maximum entries per list; each list truncates independently
        data_year: Fallback report year for entries without one
        prior_year: Fallback prior year for entries without one
        direction: "higher" or "lower" is better

    Returns:
        LeaderboardSection with labelled, ranked lists
    """
    lower_is_better = direction == 'lower'
    entries = [entry for entry in entries if entry.value is not None or entry.prior_value is not None]

    if lower_is_better:
        improving = [entry for entry in entries if entry.delta is not None and entry.delta < 0]
        declining = [entry for entry in entries if entry.delta is not None and entry.delta > 0]
    else:
        improving = [entry for entry in entries if entry.delta is not None and entry.delta > 0]
        declining = [entry for entry in entries if entry.delta is not None and entry.delta < 0]

    return LeaderboardSection(
        key=key,
        title=title,
        metric_type=metric_type,
        unit_label=unit_label(metric_type, unit),
        direction=direction,
        top_performers=_finalize(rank_by_value(entries, limit, ascending=lower_is_better), metric_type, data_year, prior_year),
        biggest_movers=_finalize(rank_by_delta(improving, limit, ascending=lower_is_better), metric_type, data_year, prior_year),
        biggest_decliners=_finalize(rank_by_delta(declining, limit, ascending=not lower_is_better), metric_type, data_year, prior_year),
    )


def measure_snapshots(
    current: MeasureDetails,
    prior_values: Optional[Dict[str, ContractMeasureValue]] = None,
) -> Dict[str, MetricSnapshot]:
    """
    Per-contract current/prior values of one measure.

    Only values of the measure's dominant value type are compared, and a
    prior value must come from an earlier year than the contract's current one.
    """
    prior_values = prior_values or {}
    snapshots: Dict[str, MetricSnapshot] = {}
    for contract_id, entry in current.contract_values.items():
        if entry.value is None or entry.value_type != current.value_type:
            continue

        prior_entry = prior_values.get(contract_id)
        usable_prior = (
            prior_entry is not None
            and prior_entry.value is not None
            and prior_entry.value_type == entry.value_type
            and prior_entry.year is not None
            and entry.year is not None
            and prior_entry.year < entry.year
        )
        snapshots[contract_id] = MetricSnapshot(
            current=entry.value,
            prior=prior_entry.value if usable_prior else None,
            current_year=entry.year,
            prior_year=prior_entry.year if usable_prior else None,
        )
    return snapshots


# === Measure and domain sections ===

def section_key(prefix: str, label: str) -> str:
    slug = _SLUG_SEPARATORS.sub('-', label.strip().lower()).strip('-')
    return f"{prefix}-{slug}" if slug else prefix


@dataclass
class ResolvedMeasure:
    details: MeasureDetails
    snapshots: Dict[str, MetricSnapshot]

    @property
    def direction(self) -> str:
        return measure_direction(self.details.name, self.details.code)

    @property
    def domain(self) -> str:
        return (self.details.domain or "").strip() or OTHER_DOMAIN


@dataclass
class MetricGroup:
    """One rankable contract-level metric: a single measure or a domain average."""
    key: str
    title: str
    metric_type: str
    snapshots: Dict[str, MetricSnapshot]
    data_year: Optional[int] = None
    direction: str = 'higher'
    unit: Optional[str] = None

    def section(self, entries: List[LeaderboardEntry], limit: int) -> LeaderboardSection:
        return build_section(
            key=self.key,
            title=self.title,
            metric_type=self.metric_type,
            entries=entries,
            limit=limit,
            data_year=self.data_year,
            direction=self.direction,
            unit=self.unit,
        )


def measure_group(measure: ResolvedMeasure) -> MetricGroup:
    details = measure.details
    return MetricGroup(
        key=f"measure-{details.code}",
        title=f"Measure Performance: {details.name}",
        metric_type=METRIC_TYPE_BY_VALUE_TYPE[details.value_type],
        snapshots=measure.snapshots,
        data_year=details.latest_year,
        direction=measure.direction,
        unit=details.unit,
    )


def average_snapshots(members: Iterable[Dict[str, MetricSnapshot]]) -> Dict[str, MetricSnapshot]:
    """Unweighted per-contract mean over several measures; current and prior average independently."""
    collected: Dict[str, List[MetricSnapshot]] = {}
    for snapshots in members:
        for contract_id, snapshot in snapshots.items():
            collected.setdefault(contract_id, []).append(snapshot)

    averaged: Dict[str, MetricSnapshot] = {}
    for contract_id, snapshots in collected.items():
        currents = [s for s in snapshots if s.current is not None]
        priors = [s for s in snapshots if s.prior is not None]
        if not currents and not priors:
            continue
        averaged[contract_id] = MetricSnapshot(
            current=sum(s.current for s in currents) / len(currents) if currents else None,
            prior=sum(s.prior for s in priors) / len(priors) if priors else None,
            current_year=max((s.current_year for s in currents if s.current_year is not None), default=None),
            prior_year=max((s.prior_year for s in priors if s.prior_year is not None), default=None),
        )
    return averaged


def domain_groups(measures: Iterable[ResolvedMeasure]) -> List[MetricGroup]:
    """
    One "Domain Performance" group per measure domain, in domain name order.

    A domain averages its rate measures, or its star measures when it has no
    rates. Numeric measures mix units and never enter a domain average. The
    domain ranks lower-is-better when inverse measures supply at least half
    of its contract values.

    Args:
        measures: Resolved measures of one cohort

    Returns:
        List of MetricGroup keyed "domain-<slug>"
    """
    by_domain: Dict[str, List[ResolvedMeasure]] = {}
    for measure in measures:
        by_domain.setdefault(measure.domain, []).append(measure)

    groups: List[MetricGroup] = []
    for domain in sorted(by_domain):
        value_types = {measure.details.value_type for measure in by_domain[domain]}
        value_type = next((kind for kind in DOMAIN_VALUE_TYPES if kind in value_types), None)
        if value_type is None:
            continue

        members = [measure for measure in by_domain[domain] if measure.details.value_type == value_type]
        snapshots = average_snapshots(measure.snapshots for measure in members)
        if not snapshots:
            continue

        total = sum(len(measure.snapshots) for measure in members)
        inverse = sum(len(measure.snapshots) for measure in members if measure.direction == 'lower')
        years = [measure.details.latest_year for measure in members if measure.details.latest_year is not None]
        groups.append(MetricGroup(
            key=section_key('domain', domain),
            title=f"Domain Performance: {domain}",
            metric_type=METRIC_TYPE_BY_VALUE_TYPE[value_type],
            snapshots=snapshots,
            data_year=max(years, default=None),
            direction='lower' if inverse * 2 >= total else 'higher',
        ))
    return groups


def empty_response(mode: str, filters: Dict[str, Any]) -> LeaderboardResponse:
    return LeaderboardResponse(
        generated_at=datetime.now(timezone.utc).isoformat(),
        mode=mode,
        filters=filters,
    )


class LeaderboardService:
    """Builds contract and organization leaderboards from the MA store."""

    def __init__(
        self,
        repository: MARepository,
        landscape_builder: Optional[EnrollmentLandscapeBuilder] = None,
        measure_resolver: Optional[MeasureValueResolver] = None,
    ):
        self.repository = repository
        self.landscape_builder = landscape_builder or EnrollmentLandscapeBuilder(repository)
        self.measure_resolver = measure_resolver or MeasureValueResolver(repository)

    def _resolve_measure(
        self,
        code: str,
        contract_ids: Sequence[str],
        data_year: Optional[int],
    ) -> Optional[ResolvedMeasure]:
        """Current details plus per-contract snapshots, or None when the measure has no data."""
        current = self.measure_resolver.resolve(code, contract_ids, as_of_year=data_year)
        if current is None or not current.contract_values:
            logger.info("Skipping measure %s: no values for %d contracts", code, len(contract_ids))
            return None

        # Prior values need no prior-year metadata row
        prior_values: Dict[str, ContractMeasureValue] = {}
        if current.latest_year is not None:
            prior_values = self.measure_resolver.fetch_values(
                current.code, contract_ids, as_of_year=current.latest_year - 1,
            )
        return ResolvedMeasure(details=current, snapshots=measure_snapshots(current, prior_values))

    def _cohort_measure_codes(self, contract_ids: Sequence[str], data_year: Optional[int]) -> List[str]:
        codes = set()
        for chunk in chunked(sorted(set(contract_ids)), self.measure_resolver.chunk_size):
            codes.update(code.strip().upper() for code in self.repository.measure_codes(chunk, data_year) if code)
        return sorted(codes)

    def _metric_groups(
        self,
        contract_ids: Sequence[str],
        data_year: Optional[int],
        measure_codes: Sequence[str],
        include_measures: bool,
    ) -> List[MetricGroup]:
        """
        Measure and domain groups for a rated cohort.

        Requested measures come first, in request order. With include_measures
        every measure the cohort reports is resolved too; domain groups follow,
        then the remaining measures by name.
        """
        requested = list(dict.fromkeys(code.strip().upper() for code in measure_codes if code and code.strip()))
        discovered: List[str] = []
        if include_measures:
            discovered = [
                code for code in self._cohort_measure_codes(contract_ids, data_year)
                if code not in requested
            ]

        resolved: Dict[str, ResolvedMeasure] = {}
        for code in requested + discovered:
            measure = self._resolve_measure(code, contract_ids, data_year)
            if measure is not None:
                resolved[code] = measure

        groups = [measure_group(resolved[code]) for code in requested if code in resolved]
        if include_measures:
            groups.extend(domain_groups(resolved.values()))
            extra = sorted(
                (resolved[code] for code in discovered if code in resolved),
                key=lambda measure: (measure.details.name.lower(), measure.details.code),
            )
            groups.extend(measure_group(measure) for measure in extra)
        return groups

    def contract_leaderboard(
        self,
        selection: ContractSelection,
        top_limit: int,
        measure_codes: Sequence[str] = (),
        year: Optional[int] = None,
        include_measures: bool = False,
    ) -> LeaderboardResponse:
        filters = {**selection.model_dump(), 'top_limit': top_limit, 'mode': 'contract'}

        snapshot = self.landscape_builder.build(year)
        eligible = filter_contracts(snapshot.contracts.values(), selection)
        if not eligible:
            return empty_response('contract', filters)

        ratings = fetch_summary_snapshots(self.repository, [record.contract_id for record in eligible], year)
        rated = [record for record in eligible if ratings.current('overall', record.contract_id) is not None]
        if not rated:
            return empty_response('contract', filters)

        sections = []
        for key, title, _ in SUMMARY_SECTIONS:
            metric = ratings.metrics[key]
            entries = [contract_entry(record, metric[record.contract_id])
                       for record in rated if record.contract_id in metric]
            sections.append(build_section(key, title, 'stars', entries, top_limit,
                                          ratings.data_year, ratings.prior_year))

        rated_ids = [record.contract_id for record in rated]
        by_id = {record.contract_id: record for record in rated}
        for group in self._metric_groups(rated_ids, ratings.data_year, measure_codes, include_measures):
            entries = [contract_entry(by_id[contract_id], metric)
                       for contract_id, metric in group.snapshots.items()]
            sections.append(group.section(entries, top_limit))

        logger.info(
            "Contract leaderboard: %d eligible, %d rated, %d sections (data year %s)",
            len(eligible), len(rated), len(sections), ratings.data_year,
        )
        return LeaderboardResponse(
            generated_at=datetime.now(timezone.utc).isoformat(),
            mode='contract',
            filters=filters,
            data_year=ratings.data_year,
            prior_year=ratings.prior_year,
            sections=sections,
        )

    def organization_leaderboard(
        self,
        selection: OrganizationSelection,
        top_limit: int,
        measure_codes: Sequence[str] = (),
        year: Optional[int] = None,
        include_measures: bool = False,
    ) -> LeaderboardResponse:
        filters = {**selection.model_dump(), 'top_limit': top_limit, 'mode': 'organization'}

        snapshot = self.landscape_builder.build(year)
        landscapes = snapshot.contracts
        organizations = filter_organizations(build_organization_records(landscapes).values(), selection)
        if not organizations:
            return empty_response('organization', filters)

        contract_ids = sorted({cid for org in organizations for cid in org.contract_ids})
        ratings = fetch_summary_snapshots(self.repository, contract_ids, year)
        rated = [
            org for org in organizations
            if any(ratings.current('overall', cid) is not None for cid in org.contract_ids)
        ]
        if not rated:
            return empty_response('organization', filters)

        by_name = {org.organization: org for org in rated}
        sections = []
        for key, title, _ in SUMMARY_SECTIONS:
            aggregated = aggregate_to_organizations(
                ratings.metrics[key], rated, landscapes, ratings.data_year, ratings.prior_year,
            )
            entries = [organization_entry(by_name[name], metric) for name, metric in aggregated.items()]
            sections.append(build_section(key, title, 'stars', entries, top_limit,
                                          ratings.data_year, ratings.prior_year))

        rated_contract_ids = sorted({cid for org in rated for cid in org.contract_ids})
        for group in self._metric_groups(rated_contract_ids, ratings.data_year, measure_codes, include_measures):
            aggregated = aggregate_to_organizations(group.snapshots, rated, landscapes)
            entries = [organization_entry(by_name[name], metric) for name, metric in aggregated.items()]
            sections.append(group.section(entries, top_limit))

        logger.info(
            "Organization leaderboard: %d organizations, %d rated, %d sections (data year %s)",
            len(organizations), len(rated), len(sections), ratings.data_year,
        )
        return LeaderboardResponse(
            generated_at=datetime.now(timezone.utc).isoformat(),
            mode='organization',
            filters=filters,
            data_year=ratings.data_year,
            prior_year=ratings.prior_year,
            sections=sections,
        )


# Singleton instance
_service_instance = None

def get_leaderboard_service() -> LeaderboardService:
    """Get or create singleton leaderboard service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = LeaderboardService(MARepository(get_engine()))
    return _service_instance

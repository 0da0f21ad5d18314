"""
Landscape Service

Builds one ContractLandscape per contract enrolled in a reporting period:
total enrollment, SNP / non-SNP plan groups and the dominant state.

Aggregation is plan -> state -> contract. Suppressed enrollment (NULL) stays
NULL at every level unless a real number contributes; it is never read as 0.

Dominant state ordering, first match wins:
1. the unknown state bucket ("XX") goes last
2. state enrollment descending, NULL last
3. state code ascending

When the winner is unknown or there is no winner, the state with the most
distinct plans in the plan landscape is reported instead and the share is
left NULL, since the enrollment split cannot back it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from db.models import (
    ContractRow,
    EnrollmentPeriod,
    EnrollmentRow,
    PlanLandscapeRow,
)
from db.repository import MARepository

from .types import ContractLandscape

logger = logging.getLogger(__name__)

UNKNOWN_STATE = "XX"


def is_truthy_indicator(value) -> bool:
    """SNP indicator columns hold 'Yes'/'No' text or booleans."""
    if value is None:
        return False
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    return str(value).strip().lower().startswith("yes")


def _plan_type_is_snp(plan_type: Optional[str]) -> bool:
    return "snp" in (plan_type or "").lower()


def _optional_int(value) -> Optional[int]:
    return None if pd.isna(value) else int(value)


def build_plan_features(
    enrollment: pd.DataFrame,
    plans: pd.DataFrame,
    contracts: pd.DataFrame,
) -> pd.DataFrame:
    """
    Distinct (contract, plan, state_bucket, plan_type_group) for plans with
    non-null enrollment in the period.
    """
    reported = enrollment[enrollment['enrollment'].notna()]
    if reported.empty:
        return pd.DataFrame(columns=['contract_id', 'plan_id', 'state_bucket', 'plan_type_group'])

    features = (
        reported[['contract_id', 'plan_id', 'plan_type']]
        .merge(plans[['contract_id', 'plan_id', 'state_abbreviation', 'special_needs_plan_indicator']],
               on=['contract_id', 'plan_id'], how='left')
        .merge(contracts[['contract_id', 'snp_indicator']], on='contract_id', how='left')
    )

    features['state_bucket'] = features['state_abbreviation'].where(
        features['state_abbreviation'].notna(), UNKNOWN_STATE
    )
    is_snp = (
        features['snp_indicator'].map(is_truthy_indicator)
        | features['special_needs_plan_indicator'].map(is_truthy_indicator)
        | features['plan_type'].map(_plan_type_is_snp)
    )
    features['plan_type_group'] = is_snp.map({True: 'SNP', False: 'NOT'})

    return features[['contract_id', 'plan_id', 'state_bucket', 'plan_type_group']].drop_duplicates()


def aggregate_state_enrollment(enrollment: pd.DataFrame, features: pd.DataFrame) -> pd.DataFrame:
    """
    (contract_id, state_bucket, total_enrollment) with NULL totals kept NULL.

    A plan listed in several states contributes its enrollment to each of
    them; it counts once per state however many feature rows it has.
    """
    plan_states = features[['contract_id', 'plan_id', 'state_bucket']].drop_duplicates()
    if plan_states.empty:
        return pd.DataFrame(columns=['contract_id', 'state_bucket', 'total_enrollment'])

    joined = plan_states.merge(
        enrollment[['contract_id', 'plan_id', 'enrollment']],
        on=['contract_id', 'plan_id'],
        how='inner',
    )
    return (
        joined.groupby(['contract_id', 'state_bucket'])['enrollment']
        .sum(min_count=1)
        .rename('total_enrollment')
        .reset_index()
    )


def pick_dominant_states(state_totals: pd.DataFrame) -> pd.DataFrame:
    """One row per contract: contract_total, dominant_state, dominant_share."""
    if state_totals.empty:
        return pd.DataFrame(columns=['contract_id', 'contract_total', 'dominant_state', 'dominant_share'])

    df = state_totals.copy()
    df['contract_total'] = df.groupby('contract_id')['total_enrollment'].transform(
        lambda totals: totals.sum(min_count=1)
    )
    df['_unknown_last'] = (df['state_bucket'] == UNKNOWN_STATE).astype(int)

    ranked = df.sort_values(
        ['contract_id', '_unknown_last', 'total_enrollment', 'state_bucket'],
        ascending=[True, True, False, True],
        na_position='last',
    )
    winners = ranked.groupby('contract_id', sort=False).head(1).copy()

    has_share = winners['contract_total'].notna() & (winners['contract_total'] > 0)
    winners['dominant_share'] = (
        (winners['total_enrollment'] / winners['contract_total']).where(has_share)
    )
    winners = winners.rename(columns={'state_bucket': 'dominant_state'})
    return winners[['contract_id', 'contract_total', 'dominant_state', 'dominant_share']]


def plan_count_fallback_states(plans: pd.DataFrame) -> Dict[str, str]:
    """Per contract, the known state with the most distinct plans (ties: state code)."""
    known = plans[plans['state_abbreviation'].notna() & (plans['state_abbreviation'] != UNKNOWN_STATE)]
    if known.empty:
        return {}

    counts = (
        known.groupby(['contract_id', 'state_abbreviation'])['plan_id']
        .nunique()
        .rename('plan_count')
        .reset_index()
        .sort_values(['contract_id', 'plan_count', 'state_abbreviation'], ascending=[True, False, True])
    )
    best = counts.groupby('contract_id', sort=False).head(1)
    return dict(zip(best['contract_id'], best['state_abbreviation']))


def _frame(rows: Iterable, columns: List[str]) -> pd.DataFrame:
    records = [row.model_dump() for row in rows]
    if not records:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame.from_records(records)[columns]


def build_contract_landscapes(
    period: EnrollmentPeriod,
    enrollment_rows: Iterable[EnrollmentRow],
    plan_rows: Iterable[PlanLandscapeRow],
    contract_rows: Iterable[ContractRow],
) -> Dict[str, ContractLandscape]:
    """
    Pure transform from raw rows to one ContractLandscape per enrolled contract.

    Args:
        period: Reporting period; enrollment rows for other periods are ignored
        enrollment_rows: Plan-level enrollment rows
        plan_rows: Plan landscape rows (state, SNP indicator)
        contract_rows: Contract metadata rows

    Returns:
        Dict of contract_id -> ContractLandscape, keyed in contract id order
    """
    enrollment = _frame(
        enrollment_rows,
        ['contract_id', 'plan_id', 'report_year', 'report_month', 'enrollment', 'plan_type'],
    )
    enrollment = enrollment[
        (enrollment['report_year'] == period.year)
        & (enrollment['report_month'] == period.month)
        & (enrollment['contract_id'] != "")
    ]
    # Whole numbers with NULLs; float64 would blur NULL and NaN handling
    enrollment = enrollment.assign(enrollment=pd.to_numeric(enrollment['enrollment']).astype('Int64'))

    plans = _frame(plan_rows, ['contract_id', 'plan_id', 'state_abbreviation', 'special_needs_plan_indicator'])
    plans = plans.drop_duplicates()
    contracts = _frame(
        contract_rows,
        ['contract_id', 'contract_name', 'organization_marketing_name',
         'parent_organization', 'snp_indicator', 'is_blue_cross_blue_shield'],
    ).drop_duplicates('contract_id')

    features = build_plan_features(enrollment, plans, contracts)
    state_totals = aggregate_state_enrollment(enrollment, features)
    dominant = pick_dominant_states(state_totals).set_index('contract_id')
    fallback_states = plan_count_fallback_states(plans)

    plan_groups = (
        features.groupby('contract_id')['plan_type_group']
        .agg(lambda groups: sorted({str(group).upper() for group in groups}))
        .to_dict()
    )
    # NaN would slip through truthiness checks downstream; missing is None
    contracts = contracts.astype(object).where(contracts.notna(), None)
    metadata = {row['contract_id']: row for row in contracts.to_dict(orient='records')}

    landscapes: Dict[str, ContractLandscape] = {}
    for contract_id in sorted(enrollment['contract_id'].unique()):
        total = None
        state = None
        share = None

        if contract_id in dominant.index:
            winner = dominant.loc[contract_id]
            total = _optional_int(winner['contract_total'])
            state = winner['dominant_state']
            share = None if pd.isna(winner['dominant_share']) else float(winner['dominant_share'])

        if state is None or state == UNKNOWN_STATE:
            state = fallback_states.get(contract_id)
            share = None

        meta = metadata.get(contract_id, {})
        landscapes[contract_id] = ContractLandscape(
            contract_id=contract_id,
            contract_name=meta.get('contract_name'),
            marketing_name=meta.get('organization_marketing_name'),
            parent_organization=meta.get('parent_organization'),
            is_blue_cross_blue_shield=bool(meta.get('is_blue_cross_blue_shield') or False),
            total_enrollment=total,
            plan_type_groups=plan_groups.get(contract_id, []),
            dominant_state=state,
            dominant_share=share,
        )

    return landscapes


@dataclass
class LandscapeSnapshot:
    period: Optional[EnrollmentPeriod] = None
    contracts: Dict[str, ContractLandscape] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.period is None or not self.contracts


class EnrollmentLandscapeBuilder:
    """Loads a period's rows from the store and builds the contract landscape."""

    def __init__(self, repository: MARepository):
        self.repository = repository

    def build_for_period(self, period: EnrollmentPeriod) -> Dict[str, ContractLandscape]:
        enrollment_rows = self.repository.enrollment_rows(period)
        plan_rows = self.repository.plan_landscape_rows(period)
        contract_rows = self.repository.contract_rows(period)

        landscapes = build_contract_landscapes(period, enrollment_rows, plan_rows, contract_rows)
        logger.info(
            "Built landscape for %s-%02d: %d contracts from %d enrollment rows",
            period.year, period.month, len(landscapes), len(enrollment_rows),
        )
        return landscapes

    def build(self, year: Optional[int] = None) -> LandscapeSnapshot:
        """Landscape for the latest period (optionally at or before `year`)."""
        period = self.repository.latest_enrollment_period(year)
        if period is None:
            logger.info("No enrollment period available (year ceiling %s)", year)
            return LandscapeSnapshot()
        return LandscapeSnapshot(period=period, contracts=self.build_for_period(period))


def landscape_frame(landscapes: Dict[str, ContractLandscape]) -> pd.DataFrame:
    """Flatten landscapes for export, one row per contract."""
    columns = [
        'contract_id', 'contract_name', 'marketing_name', 'parent_organization',
        'is_blue_cross_blue_shield', 'total_enrollment', 'enrollment_level',
        'plan_type_groups', 'dominant_state', 'dominant_share', 'state_eligible',
    ]
    records: List[Tuple] = [
        (
            record.contract_id,
            record.contract_name,
            record.marketing_name,
            record.parent_organization,
            record.is_blue_cross_blue_shield,
            record.total_enrollment,
            record.enrollment_level,
            ",".join(record.plan_type_groups),
            record.dominant_state,
            record.dominant_share,
            record.state_eligible,
        )
        for record in landscapes.values()
    ]
    frame = pd.DataFrame.from_records(records, columns=columns)
    return frame.astype({'total_enrollment': 'Int64'})

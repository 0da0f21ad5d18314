"""
Measure Service

Resolves one typed value per contract for a star measure.

A contract can carry several rows for the same measure (different years,
or the same year reported as a rate, a raw number and a star rating). The
resolver keeps the latest year and, within a year, the richest
representation: percent > numeric > star.
"""

import logging
import math
import os
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from db.models import MetricRow
from db.repository import MARepository

from .types import VALUE_TYPE_PRIORITY, ContractMeasureValue, MeasureDetails

logger = logging.getLogger(__name__)

# Store-imposed ceiling on contract ids per request
METRIC_CHUNK_SIZE = int(os.environ.get("METRIC_CHUNK_SIZE", "500"))
METRIC_FETCH_WORKERS = int(os.environ.get("METRIC_FETCH_WORKERS", "4"))

_LEADING_NUMBER = re.compile(r'^\s*([-+]?(?:\d+\.?\d*|\.\d+))')


def finite_number(value) -> Optional[float]:
    """float(value) when it is a finite number, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_star_rating(value) -> Optional[float]:
    """
    Parse star rating text like '3.5', '4 out of 5 stars' or '4.5 stars'.

    Non-rated entries ('Not enough data available', 'Plan too new to be
    measured') and anything without a leading number return None.
    """
    number = finite_number(value)
    if number is not None:
        return number
    if value is None:
        return None

    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return finite_number(match.group(1))


def extract_measure_value(row: MetricRow) -> Optional[ContractMeasureValue]:
    """Pick the single usable value from a metric row, or None if there is none."""
    rate = finite_number(row.rate_percent)
    if rate is not None:
        return ContractMeasureValue(value=rate, unit="%", year=row.year, value_type='percent')

    numeric = finite_number(row.value_numeric)
    if numeric is not None:
        return ContractMeasureValue(value=numeric, unit=row.value_unit, year=row.year, value_type='numeric')

    if row.star_rating is not None:
        stars = parse_star_rating(row.star_rating)
        if stars is not None:
            return ContractMeasureValue(value=stars, unit="stars", year=row.year, value_type='star')
        logger.debug(
            "Skipping unparseable star rating %r for %s (%s)",
            row.star_rating, row.contract_id, row.year,
        )

    return None


def _reconcile_key(candidate: ContractMeasureValue):
    # Latest year, then richest value type, then larger value so row order never matters
    year = candidate.year if candidate.year is not None else -math.inf
    value = candidate.value if candidate.value is not None else -math.inf
    return (year, VALUE_TYPE_PRIORITY[candidate.value_type], value)


def build_measure_value_map(rows: Iterable[MetricRow]) -> Dict[str, ContractMeasureValue]:
    """Reduce metric rows to one value per contract id."""
    values: Dict[str, ContractMeasureValue] = {}

    for row in rows:
        if not row.contract_id:
            continue

        candidate = extract_measure_value(row)
        if candidate is None:
            continue

        existing = values.get(row.contract_id)
        if existing is None or _reconcile_key(candidate) > _reconcile_key(existing):
            values[row.contract_id] = candidate

    return values


def dominant_value_type(values: Iterable[ContractMeasureValue]) -> str:
    """Highest-priority value type among non-null values; numeric when there are none."""
    present = [entry.value_type for entry in values if entry.value is not None]
    if not present:
        return 'numeric'
    return max(present, key=VALUE_TYPE_PRIORITY.__getitem__)


def determine_measure_unit(values: Dict[str, ContractMeasureValue], value_type: str) -> Optional[str]:
    if value_type == 'percent':
        return "%"
    if value_type == 'star':
        return "stars"

    for contract_id in sorted(values):
        entry = values[contract_id]
        if entry.value_type == 'numeric' and entry.unit:
            return entry.unit
    return None


def collect_measure_values(
    contract_ids: Iterable[str],
    contract_values: Dict[str, ContractMeasureValue],
) -> List[float]:
    """Non-null measure values for the given contracts, in the given order."""
    collected = []
    for contract_id in contract_ids:
        entry = contract_values.get(contract_id)
        if entry is None or entry.value is None:
            continue
        collected.append(entry.value)
    return collected


def chunked(items: Sequence[str], size: int) -> List[Sequence[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class MeasureValueResolver:
    """Fetches and reconciles one measure's values for a set of contracts."""

    def __init__(
        self,
        repository: MARepository,
        chunk_size: int = METRIC_CHUNK_SIZE,
        max_workers: int = METRIC_FETCH_WORKERS,
    ):
        self.repository = repository
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    def fetch_values(
        self,
        code: str,
        contract_ids: Iterable[str],
        as_of_year: Optional[int] = None,
    ) -> Dict[str, ContractMeasureValue]:
        """Reconciled values per contract, with no measure metadata required."""
        code = code.strip().upper()
        ids = sorted({contract_id for contract_id in contract_ids if contract_id})
        if not ids:
            return {}
        chunks = chunked(ids, self.chunk_size)

        def fetch(chunk: Sequence[str]) -> Dict[str, ContractMeasureValue]:
            return build_measure_value_map(self.repository.metric_rows(code, chunk, as_of_year))

        if len(chunks) == 1 or self.max_workers <= 1:
            partials = [fetch(chunk) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                # map() re-raises the first failed fetch; no partial result escapes
                partials = list(executor.map(fetch, chunks))

        # Chunks partition the contract ids, so the merge is a disjoint union
        merged: Dict[str, ContractMeasureValue] = {}
        for partial in partials:
            merged.update(partial)
        return merged

    def resolve(
        self,
        code: str,
        contract_ids: Iterable[str],
        as_of_year: Optional[int] = None,
    ) -> Optional[MeasureDetails]:
        """
        Resolve a measure for a set of contracts.

        Args:
            code: Measure code (e.g. "C01")
            contract_ids: Contracts to resolve values for
            as_of_year: Optional ceiling; metadata and values after it are ignored

        Returns:
            MeasureDetails, or None when the measure has no metadata at or
            before the ceiling year
        """
        code = code.strip().upper()
        metadata = self.repository.measure_metadata(code, as_of_year)
        if metadata is None:
            logger.info("No metadata for measure %s (as of %s)", code, as_of_year)
            return None

        contract_values = self.fetch_values(code, contract_ids, as_of_year)

        value_type = dominant_value_type(contract_values.values())
        years = [entry.year for entry in contract_values.values() if entry.year is not None]
        latest_year = max(years) if years else metadata.year

        return MeasureDetails(
            code=code,
            name=metadata.display_name,
            domain=metadata.domain,
            weight=metadata.weight,
            unit=determine_measure_unit(contract_values, value_type),
            value_type=value_type,
            latest_year=latest_year,
            contract_values=contract_values,
            contracts_with_data=sum(1 for entry in contract_values.values() if entry.value is not None),
        )

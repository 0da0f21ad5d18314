"""
Request models and normalization for the leaderboard endpoints.

Incoming selections are loosely typed: unknown plan types, series,
enrollment levels or buckets fall back to their defaults instead of failing
the request. Only a state filter with a missing or unknown state code is
rejected (ValueError, HTTP 400).
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .services.enrollment_levels import VALID_ENROLLMENT_LEVELS
from .services.filters import (
    CONTRACT_SERIES,
    ORGANIZATION_BUCKET_RULES,
    PLAN_TYPES,
    STATE_OPTIONS,
    US_STATE_NAMES,
    ContractSelection,
    OrganizationSelection,
)

DEFAULT_TOP_LIMIT = 10
MIN_TOP_LIMIT = 5
MAX_TOP_LIMIT = 20


class LeaderboardRequest(BaseModel):
    """POST /api/leaderboard body. Selection keys are validated during normalization."""
    mode: str
    selection: Dict[str, Any] = Field(default_factory=dict)
    top_limit: Optional[Any] = None
    measure_codes: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    include_measures: Any = False


class NormalizedLeaderboardRequest(BaseModel):
    mode: str
    contract_selection: Optional[ContractSelection] = None
    organization_selection: Optional[OrganizationSelection] = None
    top_limit: int = DEFAULT_TOP_LIMIT
    measure_codes: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    include_measures: bool = False


def clamp_top_limit(value: Any) -> int:
    """Round into [5, 20]; anything that is not a number gets the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_TOP_LIMIT
    if math.isnan(value):
        return DEFAULT_TOP_LIMIT
    if math.isinf(value):
        return MAX_TOP_LIMIT if value > 0 else MIN_TOP_LIMIT
    return min(MAX_TOP_LIMIT, max(MIN_TOP_LIMIT, int(round(value))))


def parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes")


def parse_plan_type_group(value: Optional[str]) -> str:
    normalized = str(value or "").strip().upper()
    return normalized if normalized in PLAN_TYPES else "ALL"


def parse_contract_series(value: Optional[str]) -> str:
    normalized = str(value or "").strip().upper()
    return normalized if normalized in CONTRACT_SERIES else "H_ONLY"


def parse_enrollment_level(value: Optional[str]) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in VALID_ENROLLMENT_LEVELS else "all"


def parse_measure_code(value: Optional[str]) -> Optional[str]:
    normalized = str(value or "").strip().upper()
    return normalized or None


def normalize_state(value: Optional[str]) -> Optional[str]:
    normalized = str(value or "").strip().upper()
    return normalized or None


def normalize_contract_selection(raw: Dict[str, Any]) -> ContractSelection:
    state_option = raw.get('state_option') or "all"
    if state_option not in STATE_OPTIONS:
        state_option = "all"

    state = None
    if state_option == "state":
        state = normalize_state(raw.get('state'))
        if not state:
            raise ValueError("state is required when state_option is 'state'")
        if state not in US_STATE_NAMES:
            raise ValueError(f"Unknown state code '{state}'")

    return ContractSelection(
        state_option=state_option,
        state=state,
        plan_type_group=parse_plan_type_group(raw.get('plan_type_group')),
        enrollment_level=parse_enrollment_level(raw.get('enrollment_level')),
        contract_series=parse_contract_series(raw.get('contract_series')),
        blue_only=parse_boolean(raw.get('blue_only')),
    )


def normalize_organization_selection(raw: Dict[str, Any]) -> OrganizationSelection:
    bucket = raw.get('bucket') or "all"
    return OrganizationSelection(
        bucket=bucket if bucket in ORGANIZATION_BUCKET_RULES else "all",
        blue_only=parse_boolean(raw.get('blue_only')),
    )


def normalize_leaderboard_request(request: LeaderboardRequest) -> NormalizedLeaderboardRequest:
    """
    Apply defaults, clamp the limit and validate the state filter.

    Raises:
        ValueError: unsupported mode, or a state filter without a known state
    """
    raw_limit = request.top_limit if request.top_limit is not None else request.selection.get('top_limit')
    top_limit = clamp_top_limit(raw_limit)

    measure_codes: List[str] = []
    for code in request.measure_codes:
        normalized = parse_measure_code(code)
        if normalized and normalized not in measure_codes:
            measure_codes.append(normalized)
    include_measures = parse_boolean(request.include_measures)

    if request.mode == "contract":
        return NormalizedLeaderboardRequest(
            mode="contract",
            contract_selection=normalize_contract_selection(request.selection),
            top_limit=top_limit,
            measure_codes=measure_codes,
            year=request.year,
            include_measures=include_measures,
        )

    if request.mode == "organization":
        return NormalizedLeaderboardRequest(
            mode="organization",
            organization_selection=normalize_organization_selection(request.selection),
            top_limit=top_limit,
            measure_codes=measure_codes,
            year=request.year,
            include_measures=include_measures,
        )

    raise ValueError(f"Unsupported leaderboard mode '{request.mode}'")

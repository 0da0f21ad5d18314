"""
Domain records produced by the leaderboard core.

Everything here is recomputed per request from a snapshot of store rows.
None always means "no data"; it is never a stand-in for zero.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enrollment_levels import get_enrollment_level

DOMINANT_SHARE_THRESHOLD = 0.4

# Value-type priority when several representations of one measure exist
VALUE_TYPE_PRIORITY = {'percent': 3, 'numeric': 2, 'star': 1}


@dataclass
class ContractLandscape:
    contract_id: str
    contract_name: Optional[str] = None
    marketing_name: Optional[str] = None
    parent_organization: Optional[str] = None
    is_blue_cross_blue_shield: bool = False
    total_enrollment: Optional[int] = None
    plan_type_groups: List[str] = field(default_factory=list)
    dominant_state: Optional[str] = None
    dominant_share: Optional[float] = None

    @property
    def state_eligible(self) -> bool:
        """A weak plurality does not represent the state."""
        return self.dominant_share is not None and self.dominant_share >= DOMINANT_SHARE_THRESHOLD

    @property
    def enrollment_level(self) -> str:
        return get_enrollment_level(self.total_enrollment)

    @property
    def display_name(self) -> str:
        return self.marketing_name or self.contract_name or self.contract_id


@dataclass
class ContractMeasureValue:
    value: Optional[float]
    unit: Optional[str]
    year: Optional[int]
    value_type: str  # percent | numeric | star


@dataclass
class MeasureDetails:
    code: str
    name: str
    domain: Optional[str]
    weight: Optional[float]
    unit: Optional[str]
    value_type: str
    latest_year: Optional[int]
    contract_values: Dict[str, ContractMeasureValue] = field(default_factory=dict)
    contracts_with_data: int = 0


@dataclass
class SummaryStats:
    count: int = 0
    average: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    median: Optional[float] = None
    q1: Optional[float] = None
    q3: Optional[float] = None


@dataclass
class MetricSnapshot:
    """Current and prior value of one metric for one entity."""
    current: Optional[float] = None
    prior: Optional[float] = None
    current_year: Optional[int] = None
    prior_year: Optional[int] = None

    @property
    def delta(self) -> Optional[float]:
        if self.current is None or self.prior is None:
            return None
        return self.current - self.prior


@dataclass
class LeaderboardEntry:
    entity_id: str
    entity_label: str
    value: Optional[float]
    prior_value: Optional[float]
    delta: Optional[float]
    rank: int = 0
    parent_organization: Optional[str] = None
    dominant_state: Optional[str] = None
    dominant_share: Optional[float] = None
    state_eligible: Optional[bool] = None
    total_enrollment: Optional[int] = None
    is_blue_cross_blue_shield: bool = False
    value_label: str = "—"
    prior_label: str = "—"
    delta_label: str = "—"
    report_year: Optional[int] = None
    prior_year: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LeaderboardSection:
    key: str
    title: str
    metric_type: str  # stars | rate | numeric
    unit_label: str
    direction: str  # higher | lower
    top_performers: List[LeaderboardEntry] = field(default_factory=list)
    biggest_movers: List[LeaderboardEntry] = field(default_factory=list)
    biggest_decliners: List[LeaderboardEntry] = field(default_factory=list)


@dataclass
class LeaderboardResponse:
    generated_at: str
    mode: str  # contract | organization
    filters: Dict[str, Any]
    data_year: Optional[int] = None
    prior_year: Optional[int] = None
    sections: List[LeaderboardSection] = field(default_factory=list)

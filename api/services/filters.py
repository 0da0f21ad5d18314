"""
Leaderboard filters

Filter vocabulary (plan type groups, contract series, state options,
organization buckets), the normalized selection models and the contract
filter itself. Every filter is AND-combined and order-independent.
"""

from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .types import ContractLandscape

PLAN_TYPES = ("ALL", "SNP", "NOT")
CONTRACT_SERIES = ("H_ONLY", "S_ONLY")
STATE_OPTIONS = ("all", "state")

ORGANIZATION_BUCKET_RULES: Dict[str, Callable[[int], bool]] = {
    'all': lambda count: count > 1,
    'lt5': lambda count: 2 <= count <= 4,
    '5to10': lambda count: 5 <= count <= 10,
    '10to20': lambda count: 11 <= count <= 20,
    '20plus': lambda count: count >= 21,
}

NATIONAL_STATE_CODE = "US"
NATIONAL_STATE_NAME = "United States"

US_STATE_NAMES: Dict[str, str] = {
    'AL': 'Alabama', 'AK': 'Alaska', 'AZ': 'Arizona', 'AR': 'Arkansas',
    'CA': 'California', 'CO': 'Colorado', 'CT': 'Connecticut', 'DE': 'Delaware',
    'DC': 'District of Columbia', 'FL': 'Florida', 'GA': 'Georgia', 'HI': 'Hawaii',
    'ID': 'Idaho', 'IL': 'Illinois', 'IN': 'Indiana', 'IA': 'Iowa',
    'KS': 'Kansas', 'KY': 'Kentucky', 'LA': 'Louisiana', 'ME': 'Maine',
    'MD': 'Maryland', 'MA': 'Massachusetts', 'MI': 'Michigan', 'MN': 'Minnesota',
    'MS': 'Mississippi', 'MO': 'Missouri', 'MT': 'Montana', 'NE': 'Nebraska',
    'NV': 'Nevada', 'NH': 'New Hampshire', 'NJ': 'New Jersey', 'NM': 'New Mexico',
    'NY': 'New York', 'NC': 'North Carolina', 'ND': 'North Dakota', 'OH': 'Ohio',
    'OK': 'Oklahoma', 'OR': 'Oregon', 'PA': 'Pennsylvania', 'RI': 'Rhode Island',
    'SC': 'South Carolina', 'SD': 'South Dakota', 'TN': 'Tennessee', 'TX': 'Texas',
    'UT': 'Utah', 'VT': 'Vermont', 'VA': 'Virginia', 'WA': 'Washington',
    'WV': 'West Virginia', 'WI': 'Wisconsin', 'WY': 'Wyoming',
    'PR': 'Puerto Rico', 'GU': 'Guam', 'VI': 'U.S. Virgin Islands',
    'AS': 'American Samoa', 'MP': 'Northern Mariana Islands',
}


def state_name(code: Optional[str]) -> Optional[str]:
    """Display name for a state code, or for "US" (national)."""
    if code == NATIONAL_STATE_CODE:
        return NATIONAL_STATE_NAME
    return US_STATE_NAMES.get(code or "")


class ContractSelection(BaseModel):
    state_option: str = "all"
    state: Optional[str] = None
    plan_type_group: str = "ALL"
    enrollment_level: str = "all"
    contract_series: str = "H_ONLY"
    blue_only: bool = False


class OrganizationSelection(BaseModel):
    bucket: str = "all"
    blue_only: bool = False


def contract_matches(record: ContractLandscape, selection: ContractSelection) -> bool:
    if selection.contract_series == "H_ONLY" and not record.contract_id.startswith("H"):
        return False
    if selection.contract_series == "S_ONLY" and not record.contract_id.startswith("S"):
        return False

    if selection.state_option == "state":
        if not record.state_eligible:
            return False
        if record.dominant_state != selection.state:
            return False

    if selection.plan_type_group != "ALL" and selection.plan_type_group not in record.plan_type_groups:
        return False

    if selection.enrollment_level != "all" and record.enrollment_level != selection.enrollment_level:
        return False

    if selection.blue_only and not record.is_blue_cross_blue_shield:
        return False

    return True


def filter_contracts(
    landscapes: Iterable[ContractLandscape],
    selection: ContractSelection,
) -> List[ContractLandscape]:
    """Contracts passing every filter in the selection, in input order."""
    return [record for record in landscapes if contract_matches(record, selection)]

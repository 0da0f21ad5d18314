"""
Row records for the MA store tables.

Every row read from the store is validated into one of these models at the
repository boundary. Required fields fail validation; optional fields default
to None. Contract ids are normalized (trimmed, upper-cased) on the way in.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, field_validator


def normalize_contract_id(value: Any) -> str:
    """Trim and upper-case a contract id; None becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip().upper()


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _StoreRow(BaseModel):
    model_config = {'extra': 'ignore'}

    @field_validator('contract_id', mode='before', check_fields=False)
    @classmethod
    def _normalize_contract_id(cls, value):
        return normalize_contract_id(value)


class EnrollmentPeriod(BaseModel):
    year: int
    month: int


class EnrollmentRow(_StoreRow):
    contract_id: str
    plan_id: str
    report_year: int
    report_month: int
    enrollment: Optional[int] = None
    plan_type: Optional[str] = None

    @field_validator('plan_id', mode='before')
    @classmethod
    def _plan_id_text(cls, value):
        return str(value).strip()

    @field_validator('enrollment', 'plan_type', mode='before')
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)


class PlanLandscapeRow(_StoreRow):
    contract_id: str
    plan_id: str
    state_abbreviation: Optional[str] = None
    special_needs_plan_indicator: Optional[Any] = None

    @field_validator('plan_id', mode='before')
    @classmethod
    def _plan_id_text(cls, value):
        return str(value).strip()

    @field_validator('state_abbreviation', mode='before')
    @classmethod
    def _state_code(cls, value):
        value = _blank_to_none(value)
        return str(value).strip().upper() if value is not None else None

    @field_validator('special_needs_plan_indicator', mode='before')
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)


class ContractRow(_StoreRow):
    contract_id: str
    contract_name: Optional[str] = None
    organization_marketing_name: Optional[str] = None
    parent_organization: Optional[str] = None
    snp_indicator: Optional[Any] = None
    is_blue_cross_blue_shield: Optional[bool] = None

    @field_validator(
        'contract_name',
        'organization_marketing_name',
        'parent_organization',
        'snp_indicator',
        'is_blue_cross_blue_shield',
        mode='before',
    )
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)


class MeasureMetadataRow(BaseModel):
    code: str
    name: Optional[str] = None
    alias: Optional[str] = None
    domain: Optional[str] = None
    weight: Optional[float] = None
    year: Optional[int] = None

    @field_validator('name', 'alias', 'domain', 'weight', 'year', mode='before')
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)

    @property
    def display_name(self) -> str:
        return self.name or self.alias or self.code


class MetricRow(_StoreRow):
    """
    One measure value for a contract and year.

    The numeric fields stay loosely typed: a bad value in one row must not
    fail the whole batch. The measure resolver decides which field is usable.
    """
    contract_id: str
    year: Optional[int] = None
    metric_code: Optional[str] = None
    rate_percent: Optional[Any] = None
    value_numeric: Optional[Any] = None
    value_unit: Optional[str] = None
    star_rating: Optional[Any] = None

    @field_validator(
        'year', 'metric_code', 'rate_percent', 'value_numeric', 'value_unit', 'star_rating',
        mode='before',
    )
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)


class SummaryRatingRow(_StoreRow):
    contract_id: str
    year: Optional[int] = None
    overall_rating_numeric: Optional[Any] = None
    overall_rating: Optional[Any] = None
    part_c_summary_numeric: Optional[Any] = None
    part_c_summary: Optional[Any] = None
    part_d_summary_numeric: Optional[Any] = None
    part_d_summary: Optional[Any] = None

    @field_validator(
        'year',
        'overall_rating_numeric', 'overall_rating',
        'part_c_summary_numeric', 'part_c_summary',
        'part_d_summary_numeric', 'part_d_summary',
        mode='before',
    )
    @classmethod
    def _optional(cls, value):
        return _blank_to_none(value)

import pytest

from api.services.landscape_service import (
    EnrollmentLandscapeBuilder,
    build_contract_landscapes,
    is_truthy_indicator,
    landscape_frame,
)
from db.models import EnrollmentPeriod

from conftest import FakeRepository, contract, enrollment, plan

PERIOD = EnrollmentPeriod(year=2025, month=1)


def build(enrollment_rows, plan_rows=(), contract_rows=()):
    return build_contract_landscapes(PERIOD, enrollment_rows, plan_rows, contract_rows)


def test_dominant_state_and_share():
    landscapes = build(
        [enrollment("H1", "001", 600), enrollment("H1", "002", 400)],
        [plan("H1", "001", "CA"), plan("H1", "002", "TX")],
    )
    record = landscapes["H1"]
    assert record.total_enrollment == 1000
    assert record.dominant_state == "CA"
    assert record.dominant_share == pytest.approx(0.6)
    assert record.state_eligible


def test_all_suppressed_contract_has_no_total_or_share():
    landscapes = build(
        [enrollment("H2", "001", None), enrollment("H2", "002", None)],
        [plan("H2", "001", "FL"), plan("H2", "002", "FL"), plan("H2", "003", "GA")],
    )
    record = landscapes["H2"]
    assert record.total_enrollment is None
    assert record.dominant_share is None
    assert record.enrollment_level == "null"
    assert not record.state_eligible
    # Reported from the plan landscape, never backed by a share
    assert record.dominant_state == "FL"


def test_no_plans_anywhere_leaves_state_empty():
    record = build([enrollment("H5", "001", 1500)])["H5"]
    assert record.total_enrollment == 1500
    assert record.dominant_state is None
    assert record.dominant_share is None


def test_unknown_bucket_loses_to_any_known_state():
    landscapes = build(
        [enrollment("H1", "001", 900), enrollment("H1", "002", 100)],
        [plan("H1", "002", "OR")],
    )
    record = landscapes["H1"]
    assert record.total_enrollment == 1000
    assert record.dominant_state == "OR"
    assert record.dominant_share == pytest.approx(0.1)
    assert not record.state_eligible


def test_only_unknown_bucket_falls_back_to_plan_count():
    landscapes = build(
        [enrollment("H1", "001", 900)],
        [plan("H1", "007", "NV"), plan("H1", "008", "NV"), plan("H1", "009", "AZ")],
    )
    record = landscapes["H1"]
    assert record.dominant_state == "NV"
    assert record.dominant_share is None


def test_fallback_ties_break_on_state_code():
    landscapes = build(
        [enrollment("H1", "001", None)],
        [plan("H1", "001", "WA"), plan("H1", "002", "ID")],
    )
    assert landscapes["H1"].dominant_state == "ID"


def test_state_ties_break_on_state_code():
    landscapes = build(
        [enrollment("H1", "001", 500), enrollment("H1", "002", 500)],
        [plan("H1", "001", "TX"), plan("H1", "002", "AZ")],
    )
    assert landscapes["H1"].dominant_state == "AZ"
    assert landscapes["H1"].dominant_share == pytest.approx(0.5)


def test_partially_suppressed_contract_sums_reported_values():
    landscapes = build(
        [enrollment("H1", "001", 700), enrollment("H1", "002", None)],
        [plan("H1", "001", "MI"), plan("H1", "002", "OH")],
    )
    record = landscapes["H1"]
    assert record.total_enrollment == 700
    assert record.dominant_state == "MI"
    assert record.dominant_share == 1.0


def test_multi_state_plan_counts_once_per_state():
    landscapes = build(
        [enrollment("H1", "001", 100)],
        [plan("H1", "001", "NY"), plan("H1", "001", "NJ"), plan("H1", "001", "NJ", snp="Yes")],
    )
    record = landscapes["H1"]
    assert record.total_enrollment == 200
    assert record.dominant_state == "NJ"
    assert record.plan_type_groups == ["NOT", "SNP"]


def test_plan_type_groups_from_every_snp_signal():
    landscapes = build(
        [
            enrollment("H1", "001", 10, plan_type="HMO D-SNP"),
            enrollment("H2", "001", 10),
            enrollment("H3", "001", 10),
            enrollment("H4", "001", 10),
        ],
        [plan("H2", "001", "CA", snp="YES"), plan("H3", "001", "CA"), plan("H4", "001", "CA", snp="No")],
        [contract("H3", "Three", "Org", snp="Yes - Chronic"), contract("H4", "Four", "Org", snp=False)],
    )
    assert landscapes["H1"].plan_type_groups == ["SNP"]
    assert landscapes["H2"].plan_type_groups == ["SNP"]
    assert landscapes["H3"].plan_type_groups == ["SNP"]
    assert landscapes["H4"].plan_type_groups == ["NOT"]


def test_other_periods_are_ignored():
    landscapes = build([enrollment("H1", "001", 50), enrollment("H9", "001", 70, year=2024, month=12)])
    assert list(landscapes) == ["H1"]


def test_contract_metadata_is_attached():
    landscapes = build(
        [enrollment("H1", "001", 50)],
        [plan("H1", "001", "CA")],
        [contract("H1", "Alpha", "Alpha Corp", blue=True, marketing="Alpha Plans")],
    )
    record = landscapes["H1"]
    assert record.parent_organization == "Alpha Corp"
    assert record.is_blue_cross_blue_shield
    assert record.display_name == "Alpha Plans"


def test_missing_contract_metadata_stays_none():
    landscapes = build(
        [enrollment("H1", "001", 50), enrollment("H2", "001", 70)],
        [plan("H1", "001", "CA"), plan("H2", "001", "CA")],
        [
            contract("H1", "One", "One Corp", blue=True, marketing="One Plans"),
            contract("H2", "Two", None, blue=None),
        ],
    )
    assert landscapes["H1"].display_name == "One Plans"

    record = landscapes["H2"]
    assert record.marketing_name is None
    assert record.parent_organization is None
    assert record.is_blue_cross_blue_shield is False
    assert record.display_name == "Two"


def test_share_stays_within_bounds(repository):
    snapshot = EnrollmentLandscapeBuilder(repository).build()
    for record in snapshot.contracts.values():
        if record.dominant_share is not None:
            assert 0.0 <= record.dominant_share <= 1.0


@pytest.mark.parametrize("value,expected", [
    ("Yes", True),
    (" yes - dual", True),
    ("No", False),
    (True, True),
    (False, False),
    (None, False),
])
def test_is_truthy_indicator(value, expected):
    assert is_truthy_indicator(value) is expected


def test_builder_uses_latest_reported_period(repository):
    snapshot = EnrollmentLandscapeBuilder(repository).build()

    assert snapshot.period == PERIOD
    assert sorted(snapshot.contracts) == ["H1111", "H2222", "H3333", "H5555", "S4444"]
    assert snapshot.contracts["H1111"].total_enrollment == 1000
    assert snapshot.contracts["H3333"].plan_type_groups == ["NOT", "SNP"]


def test_builder_year_ceiling(repository):
    snapshot = EnrollmentLandscapeBuilder(repository).build(year=2024)
    assert snapshot.period == EnrollmentPeriod(year=2024, month=12)
    assert snapshot.contracts["H1111"].total_enrollment == 9999


def test_builder_without_enrollment_is_empty():
    snapshot = EnrollmentLandscapeBuilder(FakeRepository()).build()
    assert snapshot.period is None
    assert snapshot.is_empty


def test_landscape_frame(repository):
    snapshot = EnrollmentLandscapeBuilder(repository).build()
    frame = landscape_frame(snapshot.contracts)

    assert len(frame) == 5
    h2222 = frame.set_index('contract_id').loc["H2222"]
    assert h2222['enrollment_level'] == "null"
    assert not h2222['state_eligible']

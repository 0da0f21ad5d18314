import pytest

from api.services.measure_service import (
    MeasureValueResolver,
    build_measure_value_map,
    collect_measure_values,
    determine_measure_unit,
    dominant_value_type,
    extract_measure_value,
    parse_star_rating,
)
from api.services.types import ContractMeasureValue
from db.models import MeasureMetadataRow

from conftest import FakeRepository, metric


@pytest.mark.parametrize("text,expected", [
    ("4", 4.0),
    ("3.5", 3.5),
    ("4 out of 5 stars", 4.0),
    ("4.5 stars", 4.5),
    (2, 2.0),
    ("Not enough data available", None),
    ("Plan too new to be measured", None),
    (None, None),
    ("nan", None),
])
def test_parse_star_rating(text, expected):
    assert parse_star_rating(text) == expected


def test_extraction_prefers_rate_then_numeric_then_star():
    assert extract_measure_value(metric("H1", "C01", 2025, rate=80, numeric=3, star="4")).value_type == 'percent'
    numeric = extract_measure_value(metric("H1", "C01", 2025, numeric=12.5, unit="days", star="4"))
    assert (numeric.value, numeric.unit, numeric.value_type) == (12.5, "days", 'numeric')
    star = extract_measure_value(metric("H1", "C01", 2025, star="3 stars"))
    assert (star.value, star.unit, star.value_type) == (3.0, "stars", 'star')


def test_unparseable_star_text_is_skipped():
    assert extract_measure_value(metric("H1", "C01", 2025, star="Not enough data available")) is None


def test_percent_row_beats_star_row_in_same_year():
    rows = [
        metric("H1", "C01", 2025, star="4"),
        metric("H1", "C01", 2025, rate=81.5),
    ]
    for ordering in (rows, list(reversed(rows))):
        value = build_measure_value_map(ordering)["H1"]
        assert value.value_type == 'percent'
        assert value.value == 81.5


def test_latest_year_beats_richer_type():
    rows = [
        metric("H1", "C01", 2024, rate=70),
        metric("H1", "C01", 2025, star="5"),
    ]
    value = build_measure_value_map(rows)["H1"]
    assert value.year == 2025
    assert value.value_type == 'star'


def test_full_tie_keeps_larger_value_regardless_of_order():
    rows = [metric("H1", "C01", 2025, rate=60), metric("H1", "C01", 2025, rate=65)]
    assert build_measure_value_map(rows)["H1"].value == 65
    assert build_measure_value_map(list(reversed(rows)))["H1"].value == 65


def test_dominant_type_and_unit():
    values = {
        "H2": ContractMeasureValue(value=3.0, unit="visits", year=2025, value_type='numeric'),
        "H1": ContractMeasureValue(value=4.0, unit="days", year=2025, value_type='numeric'),
        "H3": ContractMeasureValue(value=4.0, unit="stars", year=2025, value_type='star'),
    }
    assert dominant_value_type(values.values()) == 'numeric'
    assert determine_measure_unit(values, 'numeric') == "days"
    assert determine_measure_unit(values, 'percent') == "%"
    assert dominant_value_type([]) == 'numeric'


def test_collect_measure_values_skips_missing():
    values = {"H1": ContractMeasureValue(value=1.0, unit=None, year=2025, value_type='numeric')}
    assert collect_measure_values(["H1", "H2"], values) == [1.0]


def test_resolve(repository):
    details = MeasureValueResolver(repository).resolve("c01", ["H1111", "H2222", "H3333"])

    assert details.code == "C01"
    assert details.name == "Breast Cancer Screening"
    assert details.value_type == 'percent'
    assert details.unit == "%"
    assert details.latest_year == 2025
    assert details.contracts_with_data == 2
    assert details.contract_values["H1111"].value == 80
    assert "H2222" not in details.contract_values


def test_resolve_with_year_ceiling(repository):
    details = MeasureValueResolver(repository).resolve("C01", ["H1111", "H3333"], as_of_year=2024)
    assert details.name == "Breast Cancer Screening (old)"
    assert details.contract_values["H1111"].value == 75
    assert details.latest_year == 2024


def test_resolve_unknown_measure_is_none(repository):
    assert MeasureValueResolver(repository).resolve("Z99", ["H1111"]) is None


def test_resolve_empty_contract_set(repository):
    details = MeasureValueResolver(repository).resolve("C01", [])
    assert details.contract_values == {}
    assert details.contracts_with_data == 0
    assert details.latest_year == 2025
    assert repository.metric_calls == []


def test_chunked_fetch_merges_every_chunk():
    ids = [f"H{n:04d}" for n in range(7)]
    repo = FakeRepository(
        measures=[MeasureMetadataRow(code="C01", name="Screening", year=2025)],
        metrics=[metric(contract_id, "C01", 2025, rate=50 + n) for n, contract_id in enumerate(ids)],
    )

    details = MeasureValueResolver(repo, chunk_size=3, max_workers=3).resolve("C01", ids)

    assert sorted(len(chunk) for chunk in repo.metric_calls) == [1, 3, 3]
    assert details.contracts_with_data == 7
    assert details.contract_values["H0006"].value == 56


def test_failed_chunk_raises():
    class FailingRepository(FakeRepository):
        def metric_rows(self, code, contract_ids, max_year=None):
            if "H0004" in contract_ids:
                raise RuntimeError("store unavailable")
            return super().metric_rows(code, contract_ids, max_year)

    repo = FailingRepository(measures=[MeasureMetadataRow(code="C01", name="Screening", year=2025)])
    ids = [f"H{n:04d}" for n in range(6)]

    with pytest.raises(RuntimeError):
        MeasureValueResolver(repo, chunk_size=2, max_workers=2).resolve("C01", ids)


def test_fetch_values_needs_no_metadata():
    repo = FakeRepository(metrics=[
        metric("H1", "C01", 2025, rate=80),
        metric("H1", "C01", 2024, rate=70),
        metric("H2", "C01", 2024, star="3"),
    ])
    resolver = MeasureValueResolver(repo)

    values = resolver.fetch_values("c01", ["H2", "H1", "H1", ""], as_of_year=2024)

    assert values["H1"].value == 70
    assert (values["H2"].value, values["H2"].value_type) == (3.0, 'star')
    assert repo.metric_calls == [["H1", "H2"]]
    assert resolver.resolve("C01", ["H1"]) is None

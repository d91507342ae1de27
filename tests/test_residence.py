"""Unit tests for residence filtering of billing items."""

from decimal import Decimal

import pytest

from conftest import make_item
from feeledger.billing.residence import (
    filter_by_residence,
    infer_scope_from_name,
    normalize_residence,
    resolve_residence,
)
from feeledger.core.enums import ResidenceScope, ResidenceType
from feeledger.core.exceptions import AmbiguousResidenceWarning


@pytest.fixture()
def items():
    return [
        make_item("Tuition", 500000, ResidenceScope.BOTH),
        make_item("BoardingFee", 300000, ResidenceScope.BOARDING),
        make_item("Lunch", 90000, ResidenceScope.DAY),
        make_item("Development Levy", 20000, ResidenceScope.UNSPECIFIED),
    ]


def test_day_student_owes_tuition_only() -> None:
    """S1 catalog, Day residence: 500000."""
    catalog = [
        make_item("Tuition", 500000, ResidenceScope.BOTH),
        make_item("BoardingFee", 300000, ResidenceScope.BOARDING),
    ]
    result = filter_by_residence(catalog, ResidenceType.DAY)
    assert result.total == Decimal("500000")
    assert [i.name for i in result.items] == ["Tuition"]


def test_boarding_student_owes_everything() -> None:
    """S1 catalog, Boarding residence, inclusive policy: 800000."""
    catalog = [
        make_item("Tuition", 500000, ResidenceScope.BOTH),
        make_item("BoardingFee", 300000, ResidenceScope.BOARDING),
    ]
    result = filter_by_residence(catalog, ResidenceType.BOARDING)
    assert result.total == Decimal("800000")


def test_day_output_never_contains_boarding_items(items) -> None:
    result = filter_by_residence(items, ResidenceType.DAY)
    assert all(i.residence_scope != ResidenceScope.BOARDING for i in result.items)
    assert [i.name for i in result.items] == ["Tuition", "Lunch", "Development Levy"]


def test_boarding_inherits_day_items_by_default(items) -> None:
    result = filter_by_residence(items, ResidenceType.BOARDING)
    assert [i.name for i in result.items] == ["Tuition", "BoardingFee", "Lunch", "Development Levy"]


def test_boarding_exclusive_policy_drops_day_items(items) -> None:
    result = filter_by_residence(items, ResidenceType.BOARDING, boarding_inherits_day=False)
    assert [i.name for i in result.items] == ["Tuition", "BoardingFee", "Development Levy"]
    assert result.total == Decimal("820000")


@pytest.mark.parametrize("residence", [ResidenceType.DAY, ResidenceType.BOARDING])
def test_filtering_is_idempotent(items, residence) -> None:
    once = filter_by_residence(items, residence)
    twice = filter_by_residence(once.items, residence)
    assert twice == once


@pytest.mark.parametrize("residence", [ResidenceType.DAY, ResidenceType.BOARDING])
def test_total_is_sum_of_kept_items(items, residence) -> None:
    result = filter_by_residence(items, residence)
    assert result.total == sum(i.amount for i in result.items)


def test_absent_residence_defaults_to_day_with_warning(items) -> None:
    with pytest.warns(AmbiguousResidenceWarning):
        result = filter_by_residence(items, None)
    assert result.residence == ResidenceType.DAY
    assert result.residence_defaulted is True
    assert result.items == filter_by_residence(items, ResidenceType.DAY).items


def test_empty_catalog_totals_zero() -> None:
    result = filter_by_residence([], ResidenceType.BOARDING)
    assert result.items == []
    assert result.total == Decimal("0")


def test_unspecified_items_kept_without_name_inference() -> None:
    legacy = [make_item("Boarding Fee", 300000), make_item("Lunch Fee", 90000)]
    assert len(filter_by_residence(legacy, ResidenceType.DAY).items) == 2
    assert len(filter_by_residence(legacy, ResidenceType.BOARDING).items) == 2


def test_name_inference_classifies_legacy_items() -> None:
    legacy = [make_item("Tuition", 500000), make_item("Boarding Fee", 300000), make_item("Lunch Fee", 90000)]
    day = filter_by_residence(legacy, ResidenceType.DAY, infer_unspecified=True)
    boarding = filter_by_residence(legacy, ResidenceType.BOARDING, infer_unspecified=True, boarding_inherits_day=False)
    assert [i.name for i in day.items] == ["Tuition", "Lunch Fee"]
    assert [i.name for i in boarding.items] == ["Tuition", "Boarding Fee"]


def test_name_inference_never_overrides_explicit_scope() -> None:
    item = make_item("Boarding Fee", 300000, ResidenceScope.BOTH)
    result = filter_by_residence([item], ResidenceType.DAY, infer_unspecified=True)
    assert result.items == [item]


@pytest.mark.parametrize(
    "name, scope",
    [
        ("Boarding Fee", ResidenceScope.BOARDING),
        ("  BOARD & lodging", ResidenceScope.BOARDING),
        ("Lunch", ResidenceScope.DAY),
        ("luch fee", ResidenceScope.DAY),
        ("Tuition", ResidenceScope.UNSPECIFIED),
        (None, ResidenceScope.UNSPECIFIED),
    ],
)
def test_infer_scope_from_name(name, scope) -> None:
    assert infer_scope_from_name(name) == scope


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Boarding", ResidenceType.BOARDING),
        (" boarder ", ResidenceType.BOARDING),
        ("day scholar", ResidenceType.DAY),
        ("DAY", ResidenceType.DAY),
        (ResidenceType.DAY, ResidenceType.DAY),
        ("", None),
        ("hostel", None),
        (None, None),
    ],
)
def test_normalize_residence(raw, expected) -> None:
    assert normalize_residence(raw) == expected


def test_resolve_residence_keeps_known_value_silently() -> None:
    import warnings

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert resolve_residence("Boarding") == (ResidenceType.BOARDING, False)

import itertools

import pytest

from entitlements.badges import (
    BADGE_RANK,
    Badge,
    Comparison,
    compare,
    highest,
    is_lowest,
    meets,
    normalize_badge,
    ordered_badges,
    parse_badge,
)


def test_badges_are_totally_ordered():
    assert ordered_badges() == [Badge.BRONZE, Badge.SILVER, Badge.GOLD, Badge.PLATINUM]
    assert len(set(BADGE_RANK.values())) == len(Badge)


@pytest.mark.parametrize("a,b", list(itertools.product(Badge, repeat=2)))
def test_compare_is_antisymmetric(a, b):
    forward = compare(a, b)
    backward = compare(b, a)
    if forward == Comparison.EQUAL:
        assert a == b
        assert backward == Comparison.EQUAL
    else:
        assert {forward, backward} == {Comparison.LOWER, Comparison.HIGHER}


def test_compare_is_transitive():
    for a, b, c in itertools.product(Badge, repeat=3):
        if compare(a, b) == Comparison.LOWER and compare(b, c) == Comparison.LOWER:
            assert compare(a, c) == Comparison.LOWER


@pytest.mark.parametrize("raw", ["silver", "Silver", " SILVER "])
def test_normalize_badge_is_case_insensitive(raw):
    assert normalize_badge(raw) == Badge.SILVER


@pytest.mark.parametrize("raw", [None, "", "Diamond"])
def test_normalize_badge_missing_or_unknown_is_bronze(raw):
    assert normalize_badge(raw) == Badge.BRONZE


def test_parse_badge_is_strict():
    assert parse_badge("gold") == Badge.GOLD
    assert parse_badge("Diamond") is None
    assert parse_badge(None) is None


def test_highest_and_meets():
    assert highest([]) == Badge.BRONZE
    assert highest(["Silver", "platinum", "Gold"]) == Badge.PLATINUM
    assert meets(Badge.GOLD, Badge.SILVER) is True
    assert meets(Badge.SILVER, Badge.SILVER) is True
    assert meets(Badge.BRONZE, Badge.SILVER) is False
    assert is_lowest(None) is True

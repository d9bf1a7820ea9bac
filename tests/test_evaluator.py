"""Upgrade and tier evaluation over every badge pair."""

import itertools

import pytest

from entitlements.badges import Badge, rank
from entitlements.evaluator import (
    ALREADY_HIGHER_REASON,
    ALREADY_OWNED_REASON,
    UPGRADE_REQUIRED_REASON,
    evaluate_action,
    evaluate_upgrade,
)
from entitlements.models import DecisionOutcome

PAIRS = list(itertools.product(Badge, repeat=2))


def test_first_purchase_is_allowed():
    assert evaluate_upgrade(Badge.BRONZE, Badge.SILVER).is_allowed


def test_paid_tier_upgrade_needs_confirmation():
    decision = evaluate_upgrade(Badge.SILVER, Badge.GOLD)
    assert decision.outcome == DecisionOutcome.NEEDS_CONFIRMATION
    assert decision.prompt == "upgrade from Silver to Gold?"
    assert decision.action_required == "confirm"


def test_downgrade_is_blocked():
    decision = evaluate_upgrade(Badge.GOLD, Badge.SILVER)
    assert decision.is_blocked
    assert decision.reason == ALREADY_HIGHER_REASON


def test_same_tier_is_blocked():
    decision = evaluate_upgrade(Badge.GOLD, Badge.GOLD)
    assert decision.is_blocked
    assert decision.reason == ALREADY_OWNED_REASON


def test_missing_badge_upgrades_like_bronze():
    assert evaluate_upgrade(None, "Platinum").is_allowed


@pytest.mark.parametrize("current,target", PAIRS)
def test_upgrade_never_allows_equal_or_lower_target(current, target):
    decision = evaluate_upgrade(current, target)
    if rank(target) <= rank(current):
        assert decision.is_blocked
    else:
        assert not decision.is_blocked


@pytest.mark.parametrize("current,target", PAIRS)
def test_only_bronze_upgrades_skip_confirmation(current, target):
    decision = evaluate_upgrade(current, target)
    if rank(target) > rank(current):
        assert decision.is_allowed == (current == Badge.BRONZE)
        assert decision.requires_confirmation == (current != Badge.BRONZE)


@pytest.mark.parametrize("principal_badge,required", PAIRS)
def test_action_allowed_iff_rank_meets_requirement(principal_badge, required):
    decision = evaluate_action(principal_badge, required)
    assert decision.is_allowed == (rank(principal_badge) >= rank(required))
    if not decision.is_allowed:
        assert decision.reason == UPGRADE_REQUIRED_REASON
        assert decision.action_required == "upgrade"
        assert decision.required_badge == required


def test_evaluation_is_deterministic():
    assert evaluate_upgrade("Silver", "Gold") == evaluate_upgrade(Badge.SILVER, Badge.GOLD)

import pytest

from entitlements.badges import Badge
from entitlements.gate import UNKNOWN_ACTION_ERROR_CODE, FeatureGate, GatedAction
from entitlements.models import MembershipConfig, MembershipPackage, Principal


@pytest.fixture
def gate(config):
    return FeatureGate(config)


def test_no_principal_is_unauthenticated_not_blocked(gate):
    decision = gate.can_perform(GatedAction.REQUEST_MEAL, None)
    assert decision.is_unauthenticated
    assert decision.action_required == "sign_in"


def test_bronze_cannot_request_meal(gate):
    decision = gate.can_perform(GatedAction.REQUEST_MEAL, Principal(email="a@example.com"))
    assert decision.is_blocked
    assert decision.reason == "upgrade required"
    assert decision.required_badge == Badge.SILVER


@pytest.mark.parametrize("badge", [Badge.SILVER, Badge.GOLD, Badge.PLATINUM])
def test_silver_and_above_may_like_upcoming(gate, badge):
    principal = Principal(email="a@example.com", badge=badge)
    assert gate.can_perform(GatedAction.LIKE_UPCOMING, principal).is_allowed


@pytest.mark.parametrize("action", [GatedAction.LIKE_MEAL, GatedAction.REVIEW_MEAL, GatedAction.REVIEW_UPCOMING])
def test_ungated_actions_need_only_sign_in(gate, action):
    assert gate.can_perform(action, Principal(email="a@example.com")).is_allowed


def test_action_names_are_normalized(gate):
    principal = Principal(email="a@example.com", badge="Silver")
    assert gate.can_perform(" Request-Meal ", principal).is_allowed


def test_unknown_action_is_blocked(gate):
    decision = gate.can_perform("delete-meal", Principal(email="a@example.com", badge="Platinum"))
    assert decision.is_blocked
    assert decision.error_code == UNKNOWN_ACTION_ERROR_CODE


def test_admin_role_does_not_bypass_tier(gate):
    admin = Principal(email="warden@example.com", role="admin")
    assert gate.can_perform(GatedAction.REQUEST_MEAL, admin).is_blocked


def test_requirements_come_from_config():
    config = MembershipConfig(
        packages={Badge.GOLD: MembershipPackage(badge=Badge.GOLD, price=10)},
        action_requirements={"request-meal": Badge.GOLD},
    )
    gate = FeatureGate(config)
    assert gate.required_badge(GatedAction.REQUEST_MEAL) == Badge.GOLD
    assert gate.can_perform("request-meal", Principal(email="a@example.com", badge="Silver")).is_blocked

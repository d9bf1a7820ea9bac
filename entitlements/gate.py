"""
Feature gate for tier-restricted actions.

The gate is advisory: it performs no mutation and no network call. The
backend re-enforces the same rules; the client-side gate only decides whether
to issue the mutation or to present the sign-in / upgrade path instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from .evaluator import evaluate_action
from .loader import get_membership_config
from .models import EntitlementDecision, MembershipConfig, Principal

UNKNOWN_ACTION_ERROR_CODE = "UNKNOWN_GATED_ACTION"


class GatedAction(str, Enum):
    LIKE_UPCOMING = "like-upcoming"
    REQUEST_MEAL = "request-meal"
    REVIEW_UPCOMING = "review-upcoming"
    LIKE_MEAL = "like-meal"
    REVIEW_MEAL = "review-meal"


ActionLike = Union[GatedAction, str]


def _action_key(action: ActionLike) -> str:
    if isinstance(action, GatedAction):
        return action.value
    return str(action).strip().lower()


class FeatureGate:
    """Evaluates gated actions against the configured minimum badges."""

    def __init__(self, config: Optional[MembershipConfig] = None) -> None:
        self._config = config

    @property
    def config(self) -> MembershipConfig:
        return self._config or get_membership_config()

    def required_badge(self, action: ActionLike):
        return self.config.action_requirements.get(_action_key(action))

    def can_perform(self, action: ActionLike, principal: Optional[Principal]) -> EntitlementDecision:
        """
        Decide whether principal may perform action.

        No principal yields Unauthenticated (prompt sign-in), distinct from
        Blocked (prompt upgrade). Actions missing from the config are blocked.
        """
        if principal is None:
            return EntitlementDecision.unauthenticated()

        required = self.required_badge(action)
        if required is None:
            return EntitlementDecision.blocked(
                f"unknown action: {_action_key(action)}",
                error_code=UNKNOWN_ACTION_ERROR_CODE,
            )

        return evaluate_action(principal.badge, required)


def can_perform(action: ActionLike, principal: Optional[Principal]) -> EntitlementDecision:
    return FeatureGate().can_perform(action, principal)

"""
Entitlement evaluation for upgrades and tier-restricted actions.

Pure functions of their inputs. Blocking is a normal outcome, so nothing here
raises: every path returns an EntitlementDecision.
"""

from __future__ import annotations

from .badges import BadgeLike, Comparison, compare, is_lowest, normalize_badge
from .models import EntitlementDecision

ALREADY_HIGHER_REASON = "already has a higher tier"
ALREADY_OWNED_REASON = "already owns this tier"
UPGRADE_REQUIRED_REASON = "upgrade required"


def evaluate_upgrade(current_badge: BadgeLike, target_badge: BadgeLike) -> EntitlementDecision:
    """
    Decide whether a principal holding current_badge may buy target_badge.

    - higher tier already held: Blocked, downgrades never go through here
    - same tier: Blocked, before any payment step is initiated
    - paid tier held, higher target: NeedsConfirmation
    - lowest tier held: Allowed, first purchase goes straight to payment
    """
    current = normalize_badge(current_badge)
    target = normalize_badge(target_badge)
    relation = compare(current, target)

    if relation == Comparison.HIGHER:
        return EntitlementDecision.blocked(ALREADY_HIGHER_REASON)

    if relation == Comparison.EQUAL:
        return EntitlementDecision.blocked(ALREADY_OWNED_REASON)

    if not is_lowest(current):
        return EntitlementDecision.needs_confirmation(
            f"upgrade from {current.value} to {target.value}?"
        )

    return EntitlementDecision.allowed()


def evaluate_action(principal_badge: BadgeLike, required_badge: BadgeLike) -> EntitlementDecision:
    """Minimum-tier check used by the feature gate."""
    required = normalize_badge(required_badge)
    if compare(principal_badge, required) == Comparison.LOWER:
        return EntitlementDecision.blocked(
            UPGRADE_REQUIRED_REASON,
            action_required="upgrade",
            required_badge=required,
        )
    return EntitlementDecision.allowed()

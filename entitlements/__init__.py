"""
Membership entitlement engine.

This package provides:
- Badge rank model: Badge, compare, meets, normalize_badge
- Principal and EntitlementDecision value types
- MembershipConfigLoader: packages, gated actions and routes from memberships.json
- evaluate_upgrade / evaluate_action: pure upgrade and tier checks
- FeatureGate: advisory gate for tier-restricted actions
- RedirectResolver: post-authentication navigation targets
- PrincipalCache: Redis-backed principal cache with in-memory fallback

Everything here is free of network I/O. The backend client, upgrade gateway
and access service live in the membership package.
"""

from entitlements.badges import (
    BADGE_RANK,
    LOWEST_BADGE,
    Badge,
    Comparison,
    compare,
    highest,
    meets,
    normalize_badge,
    parse_badge,
)
from entitlements.models import (
    DecisionOutcome,
    EntitlementDecision,
    MembershipConfig,
    MembershipPackage,
    PaymentRecord,
    Principal,
    RedirectTarget,
    Role,
    RoutePermissions,
    UpgradeRequest,
)
from entitlements.errors import (
    FAIL_CLOSED_ERROR_CODE,
    ConfigValidationError,
    EntitlementError,
    EntitlementEvaluationError,
    InconsistentStateError,
    PolicyBlockedError,
)
from entitlements.loader import MembershipConfigLoader, get_membership_config
from entitlements.evaluator import evaluate_action, evaluate_upgrade
from entitlements.gate import FeatureGate, GatedAction, can_perform
from entitlements.redirects import RedirectResolver, intended_path_from_state, resolve_redirect
from entitlements.cache import PrincipalCache

__all__ = [
    "BADGE_RANK",
    "LOWEST_BADGE",
    "Badge",
    "Comparison",
    "compare",
    "highest",
    "meets",
    "normalize_badge",
    "parse_badge",
    "DecisionOutcome",
    "EntitlementDecision",
    "MembershipConfig",
    "MembershipPackage",
    "PaymentRecord",
    "Principal",
    "RedirectTarget",
    "Role",
    "RoutePermissions",
    "UpgradeRequest",
    "FAIL_CLOSED_ERROR_CODE",
    "ConfigValidationError",
    "EntitlementError",
    "EntitlementEvaluationError",
    "InconsistentStateError",
    "PolicyBlockedError",
    "MembershipConfigLoader",
    "get_membership_config",
    "evaluate_action",
    "evaluate_upgrade",
    "FeatureGate",
    "GatedAction",
    "can_perform",
    "RedirectResolver",
    "intended_path_from_state",
    "resolve_redirect",
    "PrincipalCache",
]

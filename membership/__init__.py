"""
Membership backend integration: REST client, upgrade mutation gateway,
like toggles, role changes and the per-identity AccessService.

InMemoryMembershipStore with build_transport serves the same REST contract
in-process for local development and tests.
"""

from membership.client import MembershipApiClient, MembershipApiError
from membership.gateway import (
    BadgeUpdated,
    PaymentConfirmation,
    PaymentSession,
    UpgradeFailed,
    UpgradeFailureCode,
    UpgradeMutationGateway,
)
from membership.likes import LikeState, LikeToggle, LikeToggleResult
from membership.roles import RoleChangeResult, RoleManager, evaluate_role_change
from membership.service import AccessService, Identity

__all__ = [
    "MembershipApiClient",
    "MembershipApiError",
    "BadgeUpdated",
    "PaymentConfirmation",
    "PaymentSession",
    "UpgradeFailed",
    "UpgradeFailureCode",
    "UpgradeMutationGateway",
    "LikeState",
    "LikeToggle",
    "LikeToggleResult",
    "RoleChangeResult",
    "RoleManager",
    "evaluate_role_change",
    "AccessService",
    "Identity",
]

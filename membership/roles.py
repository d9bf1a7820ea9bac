"""
Admin role changes.

The client-side check is advisory; the backend decides whether the requester
is an admin. Role changes never affect the target's badge.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from entitlements.models import EntitlementDecision, Principal
from membership.client import MembershipApiClient, MembershipApiError

logger = logging.getLogger(__name__)

ADMIN_REQUIRED_REASON = "only admins can change roles"
SELF_CHANGE_REASON = "admins cannot change their own role"


@dataclass(frozen=True)
class RoleChangeResult:
    success: bool
    decision: EntitlementDecision
    message: Optional[str] = None


def evaluate_role_change(
    requester: Optional[Principal],
    target_principal_id: str,
) -> EntitlementDecision:
    if requester is None:
        return EntitlementDecision.unauthenticated()
    if not requester.is_admin:
        return EntitlementDecision.blocked(ADMIN_REQUIRED_REASON, error_code="ADMIN_REQUIRED")
    if requester.principal_id is not None and requester.principal_id == target_principal_id:
        return EntitlementDecision.blocked(SELF_CHANGE_REASON, error_code="SELF_ROLE_CHANGE")
    return EntitlementDecision.allowed()


class RoleManager:
    def __init__(self, client: MembershipApiClient) -> None:
        self._client = client

    async def change_role(
        self,
        requester: Optional[Principal],
        target_principal_id: str,
        make_admin: bool,
    ) -> RoleChangeResult:
        """Promote or demote another principal."""
        decision = evaluate_role_change(requester, target_principal_id)
        if not decision.is_allowed:
            return RoleChangeResult(success=False, decision=decision, message=decision.reason)

        try:
            response = await self._client.change_role(
                target_principal_id, make_admin=make_admin, requester_email=requester.email
            )
        except MembershipApiError as e:
            logger.warning("Role change rejected", extra={
                "requester_email": requester.email,
                "target_principal_id": target_principal_id,
                "make_admin": make_admin,
                "error_code": e.code,
            })
            return RoleChangeResult(success=False, decision=decision, message=e.message)

        logger.info("Role changed", extra={
            "requester_email": requester.email,
            "target_principal_id": target_principal_id,
            "make_admin": make_admin,
            "success": response.success,
        })
        return RoleChangeResult(success=response.success, decision=decision, message=response.message)

"""
Audit logging for entitlement enforcement.

Emits structured log events for gate denials, blocked upgrades and badge
mutations. Events carry their context in `extra` so log shippers can index
them.
"""

import logging
from typing import Optional

from entitlements.badges import Badge
from entitlements.models import EntitlementDecision

logger = logging.getLogger(__name__)


def log_entitlement_denied(
    email: Optional[str],
    action: str,
    decision: EntitlementDecision,
    correlation_id: Optional[str] = None,
) -> None:
    """Log a gate decision that was not Allowed."""
    logger.warning(
        "Entitlement denied",
        extra={
            "email": email,
            "action": "entitlement.denied",
            "gated_action": action,
            "outcome": decision.outcome.value,
            "reason": decision.reason,
            "required_badge": decision.required_badge.value if decision.required_badge else None,
            "error_code": decision.error_code,
            "correlation_id": correlation_id,
        },
    )


def log_upgrade_blocked(
    email: str,
    current_badge: Badge,
    target_badge: Optional[Badge],
    decision: EntitlementDecision,
) -> None:
    logger.info(
        "Upgrade not initiated",
        extra={
            "email": email,
            "action": "membership.upgrade_blocked",
            "current_badge": current_badge.value,
            "target_badge": target_badge.value if target_badge else None,
            "outcome": decision.outcome.value,
            "reason": decision.reason or decision.prompt,
        },
    )


def log_badge_upgraded(
    email: str,
    badge: Badge,
    payment_reference: str,
    payment_history_id: Optional[str],
    replayed: bool = False,
) -> None:
    logger.info(
        "Badge upgraded",
        extra={
            "email": email,
            "action": "membership.badge_upgraded",
            "badge": badge.value,
            "payment_reference": payment_reference,
            "payment_history_id": payment_history_id,
            "replayed": replayed,
        },
    )

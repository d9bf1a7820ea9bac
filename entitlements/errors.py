"""
Entitlement error hierarchy.

Provides:
- EntitlementError: base for all entitlement failures
- EntitlementEvaluationError: principal could not be loaded (fail-closed)
- PolicyBlockedError: a decision was required to be Allowed and was not
- InconsistentStateError: badge and payment history disagree (fatal)
- ConfigValidationError: invalid membership configuration

Blocking is an expected outcome and is normally returned as an
EntitlementDecision, never raised. PolicyBlockedError exists only for callers
that explicitly ask for enforcement.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from entitlements.models import EntitlementDecision

FAIL_CLOSED_ERROR_CODE = "ENTITLEMENTS_UNAVAILABLE_FAIL_CLOSED"


class EntitlementError(Exception):
    """Base exception for entitlement-related failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EntitlementEvaluationError(EntitlementError):
    """
    Raised when the principal needed for an evaluation cannot be loaded.

    Carries a machine-readable error_code for the UI to display.
    """

    def __init__(
        self,
        email: Optional[str],
        detail: str,
        error_code: str = FAIL_CLOSED_ERROR_CODE,
    ):
        self.email = email
        self.detail = detail
        self.error_code = error_code
        super().__init__(f"Entitlement evaluation failed for {email or 'anonymous'}: {detail}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "email": self.email,
        }


class PolicyBlockedError(EntitlementError):
    """Raised by enforcement helpers when a decision is not Allowed."""

    def __init__(self, action: str, decision: "EntitlementDecision"):
        self.action = action
        self.decision = decision
        self.error_code = (
            "UNAUTHENTICATED" if decision.is_unauthenticated else "POLICY_BLOCKED"
        )
        super().__init__(f"Action {action} not permitted: {decision.reason or decision.prompt}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "action": self.action,
            "message": self.decision.reason or self.decision.prompt,
            "action_required": self.decision.action_required,
            "required_badge": (
                self.decision.required_badge.value if self.decision.required_badge else None
            ),
        }


class InconsistentStateError(EntitlementError):
    """
    Badge mutation and payment history disagree.

    Must never happen; it is a defect to alert on, not a recoverable failure.
    """

    def __init__(self, email: str, detail: str, payment_reference: Optional[str] = None):
        self.email = email
        self.detail = detail
        self.payment_reference = payment_reference
        self.error_code = "INCONSISTENT_BADGE_STATE"
        super().__init__(f"Inconsistent membership state for {email}: {detail}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "email": self.email,
            "payment_reference": self.payment_reference,
        }


class ConfigValidationError(EntitlementError):
    """Raised when the membership config is invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.error_code = "MEMBERSHIP_CONFIG_INVALID"
        super().__init__(message)

    def to_dict(self) -> dict:
        d: dict = {"error": self.error_code, "message": str(self)}
        if self.field is not None:
            d["field"] = self.field
        return d

"""
Upgrade mutation gateway.

Turns a package selection into a payment session and a confirmed payment
into exactly one badge mutation.

    gateway = UpgradeMutationGateway(client)

    session = await gateway.initiate(principal, Badge.GOLD)
    if isinstance(session, UpgradeFailed) and session.code == UpgradeFailureCode.CONFIRMATION_REQUIRED:
        # show session.reason as a prompt, then retry with confirmed=True
        ...
    # ... external checkout runs and reports a payment reference ...
    result = await gateway.confirm(PaymentConfirmation(session=session, payment_reference=ref))

Ordering: the upgrade is always evaluated before a payment session is
requested, so a blocked upgrade never reaches the payment provider.

Idempotency: confirmations are keyed by payment reference. The backend
deduplicates; the gateway additionally memoizes applied (principal, reference)
pairs so a refreshed success page does not issue a second mutation.

The backend re-evaluates every upgrade. A 409 UPGRADE_BLOCKED from either
call is reported as UpgradeFailureCode.BLOCKED, not as a gateway failure.

The principal's badge is never changed locally. After a confirmed upgrade
the principal is marked stale and re-fetched before the next initiate.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from entitlements.audit import log_badge_upgraded, log_upgrade_blocked
from entitlements.badges import Badge, BadgeLike, parse_badge
from entitlements.errors import InconsistentStateError
from entitlements.evaluator import evaluate_upgrade
from entitlements.loader import get_membership_config
from entitlements.models import EntitlementDecision, MembershipConfig, Principal, UpgradeRequest
from membership.client import MembershipApiClient, MembershipApiError
from membership.schemas import ConfirmPaymentRequest, ConfirmPaymentResponse, PaymentHistoryEntry
from monitoring.entitlement_alerts import emit_inconsistent_state

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "succeeded"
NOT_PURCHASABLE_REASON = "not a purchasable tier"


class UpgradeFailureCode(str, Enum):
    BLOCKED = "UPGRADE_BLOCKED"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    NOT_PURCHASABLE = "NOT_PURCHASABLE"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    GATEWAY_FAILURE = "GATEWAY_FAILURE"


@dataclass(frozen=True)
class PaymentSession:
    session_token: str
    request: UpgradeRequest


@dataclass(frozen=True)
class PaymentConfirmation:
    """What the external payment provider reported for a session."""

    session: PaymentSession
    payment_reference: str
    status: str = PAYMENT_SUCCEEDED
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCEEDED and bool(self.payment_reference.strip())


@dataclass(frozen=True)
class BadgeUpdated:
    email: str
    badge: Badge
    payment_history_id: str
    payment_reference: str
    replayed: bool = False


@dataclass(frozen=True)
class UpgradeFailed:
    """Recoverable failure; the principal's badge is unchanged."""

    code: UpgradeFailureCode
    reason: str
    decision: Optional[EntitlementDecision] = None


InitiateResult = Union[PaymentSession, UpgradeFailed]
ConfirmResult = Union[BadgeUpdated, UpgradeFailed]


def _backend_failure(error: MembershipApiError) -> UpgradeFailed:
    if error.code == UpgradeFailureCode.BLOCKED.value:
        return UpgradeFailed(UpgradeFailureCode.BLOCKED, error.message)
    return UpgradeFailed(UpgradeFailureCode.GATEWAY_FAILURE, error.message)


class UpgradeMutationGateway:
    """Evaluates, initiates and confirms badge upgrades."""

    def __init__(
        self,
        client: MembershipApiClient,
        config: Optional[MembershipConfig] = None,
        on_badge_updated: Optional[Callable[[str, Badge], None]] = None,
    ) -> None:
        self._client = client
        self._config = config
        self._on_badge_updated = on_badge_updated or (lambda email, badge: None)
        self._applied: Dict[Tuple[str, str], BadgeUpdated] = {}
        self._refresh_required: Set[str] = set()

    @property
    def config(self) -> MembershipConfig:
        return self._config or get_membership_config()

    def needs_refresh(self, email: str) -> bool:
        return email.strip().lower() in self._refresh_required

    async def _fresh_principal(self, principal: Principal) -> Principal:
        if principal.email not in self._refresh_required:
            return principal
        fresh = await self._client.get_current_principal()
        if fresh.email != principal.email:
            raise MembershipApiError(
                "Signed-in principal changed during upgrade",
                code="PRINCIPAL_MISMATCH",
            )
        self._refresh_required.discard(principal.email)
        logger.info("Refreshed principal before upgrade", extra={
            "email": fresh.email,
            "badge": fresh.badge.value,
        })
        return fresh

    async def initiate(
        self,
        principal: Principal,
        target_badge: BadgeLike,
        *,
        confirmed: bool = False,
    ) -> InitiateResult:
        """
        Request a payment session for target_badge.

        Args:
            principal: The signed-in principal
            target_badge: Package the user selected
            confirmed: True once the user accepted the NeedsConfirmation prompt

        Returns:
            PaymentSession, or UpgradeFailed when the upgrade is blocked,
            still needs confirmation, or the backend call failed
        """
        target = parse_badge(target_badge)
        price = self.config.price_for(target) if target else None
        if target is None or price is None:
            decision = EntitlementDecision.blocked(NOT_PURCHASABLE_REASON)
            log_upgrade_blocked(principal.email, principal.badge, target, decision)
            return UpgradeFailed(UpgradeFailureCode.NOT_PURCHASABLE, NOT_PURCHASABLE_REASON, decision)

        try:
            principal = await self._fresh_principal(principal)
        except MembershipApiError as e:
            return UpgradeFailed(UpgradeFailureCode.GATEWAY_FAILURE, e.message)

        decision = evaluate_upgrade(principal.badge, target)
        if decision.is_blocked:
            log_upgrade_blocked(principal.email, principal.badge, target, decision)
            return UpgradeFailed(UpgradeFailureCode.BLOCKED, decision.reason, decision)

        if decision.requires_confirmation and not confirmed:
            log_upgrade_blocked(principal.email, principal.badge, target, decision)
            return UpgradeFailed(UpgradeFailureCode.CONFIRMATION_REQUIRED, decision.prompt, decision)

        request = UpgradeRequest(target_badge=target, price=price, principal_email=principal.email)
        try:
            session = await self._client.create_payment_session(target.value, price)
        except MembershipApiError as e:
            logger.warning("Payment session creation failed", extra={
                "email": principal.email,
                "target_badge": target.value,
                "error_code": e.code,
            })
            return _backend_failure(e)

        return PaymentSession(session_token=session.client_secret, request=request)

    async def confirm(self, confirmation: PaymentConfirmation) -> ConfirmResult:
        """
        Apply a confirmed payment: set the badge and record payment history.

        Raises:
            InconsistentStateError: backend reported a mutation that does not
                match the purchased tier or lacks a history record
        """
        request = confirmation.session.request
        reference = confirmation.payment_reference.strip()

        if not confirmation.succeeded:
            logger.info("Payment not completed", extra={
                "email": request.principal_email,
                "target_badge": request.target_badge.value,
                "status": confirmation.status,
            })
            return UpgradeFailed(
                UpgradeFailureCode.PAYMENT_DECLINED,
                confirmation.error_message or "payment was not completed",
            )

        memo_key = (request.principal_email, reference)
        applied = self._applied.get(memo_key)
        if applied is not None:
            return replace(applied, replayed=True)

        body = ConfirmPaymentRequest(
            email=request.principal_email,
            package_name=request.target_badge.value,
            price=request.price,
            transaction_id=reference,
            session_token=confirmation.session.session_token,
        )
        try:
            response = await self._client.confirm_payment(body)
        except MembershipApiError as e:
            logger.warning("Payment confirmation failed", extra={
                "email": request.principal_email,
                "payment_reference": reference,
                "error_code": e.code,
            })
            return _backend_failure(e)

        badge = self._verify(request, reference, response)
        result = BadgeUpdated(
            email=request.principal_email,
            badge=badge,
            payment_history_id=response.payment_history_id,
            payment_reference=reference,
            replayed=response.replayed,
        )
        self._applied[memo_key] = result
        self._refresh_required.add(request.principal_email)
        log_badge_upgraded(
            result.email, result.badge, reference, result.payment_history_id, result.replayed
        )
        self._on_badge_updated(result.email, result.badge)
        return result

    @staticmethod
    def _verify(request: UpgradeRequest, reference: str, response: ConfirmPaymentResponse) -> Badge:
        badge = parse_badge(response.badge)
        detail = None
        if not response.payment_history_id:
            detail = "badge mutation reported without a payment history record"
        elif badge != request.target_badge:
            detail = (
                f"payment for {request.target_badge.value} applied badge {response.badge!r}"
            )
        if detail:
            emit_inconsistent_state(request.principal_email, detail, reference)
            raise InconsistentStateError(request.principal_email, detail, reference)
        return badge

    async def payment_history(self, email: str) -> List[PaymentHistoryEntry]:
        return await self._client.list_payments(email)

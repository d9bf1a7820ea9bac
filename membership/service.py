"""
Access service: the entry point UI event handlers call.

Binds one signed-in identity to the entitlement engine. Principals are
resolved cache-first and fetched from the backend on miss; evaluation fails
closed when the backend cannot be reached. Decisions are computed from an
explicit Principal on every call; there is no ambient "current user".
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from entitlements.audit import log_entitlement_denied
from entitlements.badges import Badge
from entitlements.cache import PrincipalCache
from entitlements.errors import (
    FAIL_CLOSED_ERROR_CODE,
    EntitlementEvaluationError,
    PolicyBlockedError,
)
from entitlements.gate import ActionLike, FeatureGate
from entitlements.loader import get_membership_config
from entitlements.models import EntitlementDecision, MembershipConfig, Principal, RedirectTarget, Role
from entitlements.redirects import RedirectResolver, intended_path_from_state
from membership.client import MembershipApiClient, MembershipApiError
from membership.gateway import UpgradeMutationGateway
from membership.likes import LikeToggle
from membership.roles import RoleManager
from monitoring.entitlement_alerts import emit_evaluation_failure, record_deny_and_alert

logger = logging.getLogger(__name__)

ENTITLEMENTS_UNAVAILABLE_REASON = "Entitlements unavailable. Access denied."


def _action_name(action: ActionLike) -> str:
    return str(getattr(action, "value", action))


@dataclass(frozen=True)
class Identity:
    """The authenticated identity handed over by the sign-in provider."""

    token: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.token.strip():
            raise ValueError("token is required")
        email = self.email.strip().lower()
        if not email:
            raise ValueError("email is required")
        object.__setattr__(self, "email", email)


class AccessService:
    """Per-identity facade over gate, redirects, upgrades, likes and roles."""

    def __init__(
        self,
        identity: Optional[Identity],
        *,
        client: Optional[MembershipApiClient] = None,
        cache: Optional[PrincipalCache] = None,
        config: Optional[MembershipConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.identity = identity
        self.client = client or MembershipApiClient(
            identity_token=identity.token if identity else None,
            transport=transport,
        )
        self.cache = cache or PrincipalCache()
        self.config = config or get_membership_config()
        self.gate = FeatureGate(self.config)
        self.redirects = RedirectResolver(self.config)
        self.gateway = UpgradeMutationGateway(
            self.client, self.config, on_badge_updated=self._on_badge_updated
        )
        self.likes = LikeToggle(self.client, self.gate)
        self.roles = RoleManager(self.client)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _on_badge_updated(self, email: str, badge: Badge) -> None:
        self.cache.invalidate(email)

    def invalidate(self) -> None:
        if self.identity is not None:
            self.cache.invalidate(self.identity.email)

    async def current_principal(self, *, refresh: bool = False) -> Optional[Principal]:
        """
        Resolve the signed-in principal.

        Returns None when nobody is signed in or the backend rejects the
        identity token. Other backend failures raise EntitlementEvaluationError.
        """
        if self.identity is None:
            return None

        email = self.identity.email
        if refresh:
            self.cache.invalidate(email)
        else:
            cached = self.cache.get(email)
            if cached is not None:
                return cached

        try:
            principal = await self.client.get_current_principal()
        except MembershipApiError as e:
            if e.is_unauthorized:
                logger.info("Identity token rejected", extra={"email": email})
                return None
            emit_evaluation_failure(email, e.message)
            raise EntitlementEvaluationError(email, ENTITLEMENTS_UNAVAILABLE_REASON) from e

        self.cache.set(principal)
        return principal

    async def can_perform(self, action: ActionLike, correlation_id: Optional[str] = None) -> EntitlementDecision:
        """Gate check for the signed-in principal. Never raises."""
        try:
            principal = await self.current_principal()
        except EntitlementEvaluationError as e:
            decision = EntitlementDecision.blocked(e.detail, error_code=FAIL_CLOSED_ERROR_CODE)
            log_entitlement_denied(e.email, _action_name(action), decision, correlation_id)
            return decision

        decision = self.gate.can_perform(action, principal)
        if not decision.is_allowed:
            email = principal.email if principal else None
            log_entitlement_denied(email, _action_name(action), decision, correlation_id)
            if email:
                record_deny_and_alert(email, _action_name(action))
        return decision

    async def require(self, action: ActionLike) -> Principal:
        """Like can_perform, but raises PolicyBlockedError unless Allowed."""
        decision = await self.can_perform(action)
        if not decision.is_allowed:
            raise PolicyBlockedError(_action_name(action), decision)
        return await self.current_principal()

    async def register(self) -> bool:
        """Create or touch the principal record after sign-up or social sign-in.

        Returns True when a new record was created.
        """
        if self.identity is None:
            return False
        response = await self.client.register_principal(
            self.identity.email,
            name=self.identity.display_name,
            photo=self.identity.photo_url,
        )
        self.invalidate()
        return response.created

    async def resolve_redirect(self, navigation_state: Any = None) -> RedirectTarget:
        """
        Navigation target after an authentication event.

        The role is always re-read from the backend. If it cannot be read the
        principal is routed as a plain user.
        """
        intended_path = intended_path_from_state(navigation_state)
        role = Role.USER
        try:
            principal = await self.current_principal(refresh=True)
        except EntitlementEvaluationError:
            principal = None
        if principal is not None:
            role = principal.role
        return self.redirects.resolve(role, intended_path)

    async def complete_authentication(
        self,
        navigation_state: Any = None,
        *,
        register: bool = False,
    ) -> RedirectTarget:
        """Sign-in, registration and federated sign-in all finish here."""
        if register:
            try:
                await self.register()
            except MembershipApiError as e:
                logger.error("Saving principal record failed", extra={
                    "email": self.identity.email if self.identity else None,
                    "error_code": e.code,
                })
        return await self.resolve_redirect(navigation_state)

    def sign_out(self) -> None:
        self.invalidate()
        self.identity = None

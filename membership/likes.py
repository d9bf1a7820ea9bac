"""
Liked-by toggle.

Each meal and upcoming meal owns a set of principal emails. The backend flips
membership atomically and reports the set's cardinality; the client never
derives the authoritative counter from its own optimistic delta.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from entitlements.gate import FeatureGate, GatedAction
from entitlements.models import EntitlementDecision, Principal
from membership.client import MembershipApiClient, MembershipApiError
from membership.schemas import ToggleLikeResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeState:
    """What the UI shows for one item: whether the viewer liked it, and the count."""

    liked: bool
    count: int

    @classmethod
    def from_item(cls, item: Mapping[str, Any], email: Optional[str]) -> "LikeState":
        """Derive state from an item record; the count is |likedBy|, not the stored counter."""
        liked_by = _normalized_set(item.get("likedBy") or [])
        viewer = (email or "").strip().lower()
        return cls(liked=bool(viewer) and viewer in liked_by, count=len(liked_by))

    def optimistic(self) -> "LikeState":
        """Provisional state shown before the server responds."""
        if self.liked:
            return LikeState(liked=False, count=max(0, self.count - 1))
        return LikeState(liked=True, count=self.count + 1)

    @staticmethod
    def reconcile(response: ToggleLikeResponse) -> "LikeState":
        return LikeState(liked=response.liked, count=response.like_count)


@dataclass(frozen=True)
class LikeToggleResult:
    decision: EntitlementDecision
    state: Optional[LikeState] = None
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.decision.is_allowed and self.state is not None

    @property
    def liked(self) -> Optional[bool]:
        return self.state.liked if self.state else None

    @property
    def new_count(self) -> Optional[int]:
        return self.state.count if self.state else None


def _normalized_set(emails: Iterable[str]) -> set:
    return {str(e).strip().lower() for e in emails if str(e).strip()}


class LikeToggle:
    """Gates and issues like toggles for meals and upcoming meals."""

    def __init__(self, client: MembershipApiClient, gate: Optional[FeatureGate] = None) -> None:
        self._client = client
        self._gate = gate or FeatureGate()

    async def toggle_like(
        self,
        item_id: str,
        principal: Optional[Principal],
        *,
        upcoming: bool = False,
    ) -> LikeToggleResult:
        """
        Flip the principal's like on an item.

        Upcoming meals are tier-gated; regular meals need only a signed-in
        principal. A non-Allowed decision never reaches the backend.
        """
        action = GatedAction.LIKE_UPCOMING if upcoming else GatedAction.LIKE_MEAL
        decision = self._gate.can_perform(action, principal)
        if not decision.is_allowed:
            return LikeToggleResult(decision=decision)

        try:
            response = await self._client.toggle_like(item_id, upcoming=upcoming)
        except MembershipApiError as e:
            logger.warning("Like toggle failed", extra={
                "email": principal.email,
                "item_id": item_id,
                "upcoming": upcoming,
                "error_code": e.code,
            })
            return LikeToggleResult(decision=decision, error=e.message)

        return LikeToggleResult(decision=decision, state=LikeState.reconcile(response))

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .badges import Badge, normalize_badge


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


def normalize_role(value: Any) -> Role:
    """Unknown or missing roles resolve to the least privileged role."""
    if isinstance(value, Role):
        return value
    normalized = str(value or "").strip().lower()
    if normalized == Role.ADMIN.value:
        return Role.ADMIN
    return Role.USER


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 strings or epoch milliseconds. Unparseable values are dropped."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Principal:
    """An authenticated identity with a role and a membership badge.

    Role and badge are independent: an admin may hold any badge, and badge
    changes never touch the role.
    """

    email: str
    role: Role = Role.USER
    badge: Badge = Badge.BRONZE
    name: Optional[str] = None
    photo: Optional[str] = None
    principal_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_log_in: Optional[datetime] = None

    def __post_init__(self) -> None:
        email = str(self.email or "").strip().lower()
        if not email:
            raise ValueError("email is required")
        object.__setattr__(self, "email", email)
        object.__setattr__(self, "role", normalize_role(self.role))
        object.__setattr__(self, "badge", normalize_badge(self.badge))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def with_badge(self, badge: Badge) -> "Principal":
        return replace(self, badge=normalize_badge(badge))

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Principal":
        """Build a Principal from a backend user record.

        Records created before badges existed carry no badge field; they are
        treated as Bronze rather than rejected.
        """
        return cls(
            email=record.get("email", ""),
            role=record.get("role"),
            badge=record.get("badge"),
            name=record.get("name"),
            photo=record.get("photo"),
            principal_id=record.get("_id") or record.get("id"),
            created_at=parse_timestamp(record.get("created_At")),
            last_log_in=parse_timestamp(record.get("last_Log_In")),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "email": self.email,
            "role": self.role.value,
            "badge": self.badge.value,
            "name": self.name,
            "photo": self.photo,
            "created_At": self.created_at.isoformat() if self.created_at else None,
            "last_Log_In": self.last_log_in.isoformat() if self.last_log_in else None,
        }
        if self.principal_id is not None:
            record["_id"] = self.principal_id
        return record


class DecisionOutcome(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    NEEDS_CONFIRMATION = "needs_confirmation"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class EntitlementDecision:
    """Result of checking a principal against a required badge or role.

    Never persisted; recomputed for every action.
    """

    outcome: DecisionOutcome
    reason: Optional[str] = None
    prompt: Optional[str] = None
    action_required: Optional[str] = None  # upgrade, sign_in, confirm
    required_badge: Optional[Badge] = None
    error_code: Optional[str] = None

    @classmethod
    def allowed(cls) -> "EntitlementDecision":
        return cls(outcome=DecisionOutcome.ALLOWED)

    @classmethod
    def blocked(
        cls,
        reason: str,
        *,
        action_required: Optional[str] = None,
        required_badge: Optional[Badge] = None,
        error_code: Optional[str] = None,
    ) -> "EntitlementDecision":
        return cls(
            outcome=DecisionOutcome.BLOCKED,
            reason=reason,
            action_required=action_required,
            required_badge=required_badge,
            error_code=error_code,
        )

    @classmethod
    def needs_confirmation(cls, prompt: str) -> "EntitlementDecision":
        return cls(
            outcome=DecisionOutcome.NEEDS_CONFIRMATION,
            prompt=prompt,
            action_required="confirm",
        )

    @classmethod
    def unauthenticated(cls, reason: str = "sign in required") -> "EntitlementDecision":
        return cls(
            outcome=DecisionOutcome.UNAUTHENTICATED,
            reason=reason,
            action_required="sign_in",
        )

    @property
    def is_allowed(self) -> bool:
        return self.outcome == DecisionOutcome.ALLOWED

    @property
    def is_blocked(self) -> bool:
        return self.outcome == DecisionOutcome.BLOCKED

    @property
    def requires_confirmation(self) -> bool:
        return self.outcome == DecisionOutcome.NEEDS_CONFIRMATION

    @property
    def is_unauthenticated(self) -> bool:
        return self.outcome == DecisionOutcome.UNAUTHENTICATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "prompt": self.prompt,
            "action_required": self.action_required,
            "required_badge": self.required_badge.value if self.required_badge else None,
            "error_code": self.error_code,
        }


@dataclass(frozen=True)
class UpgradeRequest:
    """A selected package, consumed once by a successful payment confirmation."""

    target_badge: Badge
    price: int
    principal_email: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_badge", normalize_badge(self.target_badge))
        object.__setattr__(self, "principal_email", self.principal_email.strip().lower())
        if self.price <= 0:
            raise ValueError("price must be positive")


@dataclass(frozen=True)
class PaymentRecord:
    """One payment history row; the badge it granted is package_name."""

    entry_id: str
    email: str
    package_name: str
    price: int
    transaction_id: str
    paid_at: datetime

    def to_wire(self) -> dict:
        return {
            "_id": self.entry_id,
            "email": self.email,
            "packageName": self.package_name,
            "price": self.price,
            "transactionId": self.transaction_id,
            "paidAt": self.paid_at.isoformat(),
        }


@dataclass(frozen=True)
class RedirectTarget:
    path: str
    replace: bool = True


@dataclass(frozen=True)
class MembershipPackage:
    """A purchasable tier and its price in currency-agnostic units."""

    badge: Badge
    price: int
    features: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RoutePermissions:
    """Static route table.

    Closed world for the two named partitions, open world (permitted) for
    every other path.
    """

    admin_only: FrozenSet[str] = frozenset()
    user_only: FrozenSet[str] = frozenset()
    auth_paths: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "admin_only", frozenset(self.admin_only))
        object.__setattr__(self, "user_only", frozenset(self.user_only))
        object.__setattr__(self, "auth_paths", frozenset(self.auth_paths))


@dataclass(frozen=True)
class MembershipConfig:
    """Parsed membership configuration (packages, gated actions, routes)."""

    packages: Mapping[Badge, MembershipPackage]
    action_requirements: Mapping[str, Badge]
    routes: RoutePermissions = field(default_factory=RoutePermissions)
    default_paths: Mapping[Role, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", MappingProxyType(dict(self.packages)))
        object.__setattr__(
            self, "action_requirements", MappingProxyType(dict(self.action_requirements))
        )
        object.__setattr__(self, "default_paths", MappingProxyType(dict(self.default_paths)))

    def price_for(self, badge: Badge) -> Optional[int]:
        package = self.packages.get(normalize_badge(badge))
        return package.price if package else None

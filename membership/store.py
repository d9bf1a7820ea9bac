"""
In-memory reference implementation of the membership backend contract.

Used for local development and tests. It enforces the server-side rules the
client relies on:

- payment confirmation is idempotent on transactionId; the badge update and
  the history row are written together under one lock
- like toggles flip set membership atomically and report |likedBy|
- confirmation re-checks the package price and re-evaluates the upgrade
  against the stored badge, so a payment never lowers a badge
- tier-gated actions and role changes are re-checked server-side
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from entitlements.badges import Badge, normalize_badge, parse_badge
from entitlements.evaluator import evaluate_upgrade
from entitlements.gate import FeatureGate, GatedAction
from entitlements.loader import get_membership_config
from entitlements.models import MembershipConfig, PaymentRecord, Principal, Role

logger = logging.getLogger(__name__)


class StoreError(Exception):
    def __init__(self, message: str, code: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class _Session:
    email: str
    badge: Badge
    price: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryMembershipStore:
    def __init__(
        self,
        config: Optional[MembershipConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config or get_membership_config()
        self._gate = FeatureGate(self._config)
        self._clock = clock or _utcnow
        self._lock = RLock()
        self._principals: Dict[str, dict] = {}
        self._ids: Dict[str, str] = {}
        self._payments: List[PaymentRecord] = []
        self._payments_by_ref: Dict[str, PaymentRecord] = {}
        self._sessions: Dict[str, _Session] = {}
        self._liked_by: Dict[Tuple[str, str], Set[str]] = {}

    # -- principals ---------------------------------------------------------

    def upsert_principal(
        self,
        email: str,
        name: Optional[str] = None,
        photo: Optional[str] = None,
    ) -> Tuple[bool, dict]:
        """Create with role=user, badge=Bronze; an existing record only gets last_Log_In."""
        key = self._require_email(email)
        now = self._clock().isoformat()
        with self._lock:
            existing = self._principals.get(key)
            if existing is not None:
                existing["last_Log_In"] = now
                return False, dict(existing)

            principal_id = uuid.uuid4().hex
            record = {
                "_id": principal_id,
                "email": key,
                "name": name,
                "photo": photo,
                "role": Role.USER.value,
                "badge": Badge.BRONZE.value,
                "created_At": now,
                "last_Log_In": now,
            }
            self._principals[key] = record
            self._ids[principal_id] = key
            logger.info("Principal created", extra={"email": key, "principal_id": principal_id})
            return True, dict(record)

    def seed_principal(self, record: dict) -> dict:
        """Insert a record as-is (e.g. legacy records without a badge field)."""
        key = self._require_email(record.get("email", ""))
        seeded = dict(record)
        seeded["email"] = key
        seeded.setdefault("_id", uuid.uuid4().hex)
        with self._lock:
            self._principals[key] = seeded
            self._ids[seeded["_id"]] = key
        return dict(seeded)

    def get_principal(self, email: str) -> dict:
        key = self._require_email(email)
        with self._lock:
            record = self._principals.get(key)
            if record is None:
                raise StoreError(f"user {key} not found", "NOT_FOUND", 404)
            return dict(record)

    def iter_principals(self) -> Iterator[Principal]:
        with self._lock:
            records = [dict(r) for r in self._principals.values()]
        for record in records:
            yield Principal.from_record(record)

    def _principal(self, email: str) -> Principal:
        return Principal.from_record(self.get_principal(email))

    # -- payments -----------------------------------------------------------

    def create_payment_session(self, email: str, package_name: str, price: int) -> str:
        principal = self._principal(email)
        badge = parse_badge(package_name)
        expected = self._config.price_for(badge) if badge else None
        if badge is None or expected is None:
            raise StoreError(f"unknown package {package_name!r}", "UNKNOWN_PACKAGE", 400)
        if self._require_price(price) != expected:
            raise StoreError(
                f"price {price} does not match {badge.value} package", "PRICE_MISMATCH", 400
            )

        decision = evaluate_upgrade(principal.badge, badge)
        if decision.is_blocked:
            raise StoreError(decision.reason, "UPGRADE_BLOCKED", 409)

        token = f"pi_{secrets.token_hex(12)}_secret_{secrets.token_hex(8)}"
        with self._lock:
            self._sessions[token] = _Session(email=principal.email, badge=badge, price=expected)
        return token

    def confirm_payment(
        self,
        email: str,
        package_name: str,
        price: int,
        transaction_id: str,
        session_token: Optional[str] = None,
    ) -> dict:
        """
        Apply a confirmed payment exactly once per transaction_id.

        A repeated transaction_id returns the originally applied result with
        replayed=True and writes nothing. The price must match the package and
        the upgrade is re-evaluated against the stored badge, so two sessions
        opened from the same tier cannot be used to step back down.
        """
        reference = str(transaction_id or "").strip()
        if not reference:
            raise StoreError("transactionId is required", "VALIDATION_ERROR", 400)
        key = self._require_email(email)
        badge = parse_badge(package_name)
        expected = self._config.price_for(badge) if badge else None
        if badge is None or expected is None:
            raise StoreError(f"unknown package {package_name!r}", "UNKNOWN_PACKAGE", 400)
        paid = self._require_price(price)

        with self._lock:
            existing = self._payments_by_ref.get(reference)
            if existing is not None:
                if existing.email != key:
                    raise StoreError("transactionId already used", "CONFLICT", 409)
                return {
                    "badge": existing.package_name,
                    "paymentHistoryId": existing.entry_id,
                    "replayed": True,
                }

            record = self._principals.get(key)
            if record is None:
                raise StoreError(f"user {key} not found", "NOT_FOUND", 404)

            if session_token is not None:
                session = self._sessions.get(session_token)
                if session is None or session.email != key or session.badge != badge:
                    raise StoreError("payment session does not match", "SESSION_MISMATCH", 400)

            if paid != expected:
                raise StoreError(
                    f"price {paid} does not match {badge.value} package", "PRICE_MISMATCH", 400
                )
            decision = evaluate_upgrade(normalize_badge(record.get("badge")), badge)
            if decision.is_blocked:
                raise StoreError(decision.reason, "UPGRADE_BLOCKED", 409)

            entry = PaymentRecord(
                entry_id=uuid.uuid4().hex,
                email=key,
                package_name=badge.value,
                price=paid,
                transaction_id=reference,
                paid_at=self._clock(),
            )
            # Badge and history are written together; nothing between can fail.
            self._payments.append(entry)
            self._payments_by_ref[reference] = entry
            record["badge"] = badge.value
            if session_token is not None:
                self._sessions.pop(session_token, None)

        logger.info("Payment applied", extra={
            "email": key,
            "badge": badge.value,
            "transaction_id": reference,
        })
        return {"badge": badge.value, "paymentHistoryId": entry.entry_id, "replayed": False}

    def list_payments(self, email: str) -> List[dict]:
        return [p.to_wire() for p in self.payments_for(email)]

    def payments_for(self, email: str) -> List[PaymentRecord]:
        key = self._require_email(email)
        with self._lock:
            return [p for p in self._payments if p.email == key]

    # -- likes --------------------------------------------------------------

    def toggle_like(self, item_id: str, email: str, *, upcoming: bool = False) -> dict:
        principal = self._principal(email)
        action = GatedAction.LIKE_UPCOMING if upcoming else GatedAction.LIKE_MEAL
        decision = self._gate.can_perform(action, principal)
        if not decision.is_allowed:
            raise StoreError(decision.reason, "UPGRADE_REQUIRED", 403)

        item_key = ("upcoming-meals" if upcoming else "meals", str(item_id))
        with self._lock:
            liked_by = self._liked_by.setdefault(item_key, set())
            if principal.email in liked_by:
                liked_by.discard(principal.email)
                liked = False
            else:
                liked_by.add(principal.email)
                liked = True
            count = len(liked_by)
        return {"liked": liked, "likeCount": count}

    def liked_by(self, item_id: str, *, upcoming: bool = False) -> Set[str]:
        item_key = ("upcoming-meals" if upcoming else "meals", str(item_id))
        with self._lock:
            return set(self._liked_by.get(item_key, set()))

    # -- roles --------------------------------------------------------------

    def change_role(self, principal_id: str, make_admin: bool, requester_email: str) -> dict:
        requester = self._principal(requester_email)
        if not requester.is_admin:
            raise StoreError("Only admins can change user roles", "FORBIDDEN", 403)

        with self._lock:
            target_email = self._ids.get(str(principal_id))
            if target_email is None:
                raise StoreError(f"user {principal_id} not found", "NOT_FOUND", 404)
            if target_email == requester.email:
                raise StoreError("You cannot change your own role", "SELF_ROLE_CHANGE", 400)
            self._principals[target_email]["role"] = (
                Role.ADMIN.value if make_admin else Role.USER.value
            )
        return {"success": True}

    @staticmethod
    def _require_price(price) -> int:
        try:
            return int(price)
        except (TypeError, ValueError):
            raise StoreError(f"invalid price {price!r}", "VALIDATION_ERROR", 400)

    @staticmethod
    def _require_email(email: str) -> str:
        normalized = str(email or "").strip().lower()
        if not normalized:
            raise StoreError("email is required", "VALIDATION_ERROR", 400)
        return normalized

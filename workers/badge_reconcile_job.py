from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

from entitlements.badges import highest
from entitlements.models import PaymentRecord, Principal
from monitoring.entitlement_alerts import emit_inconsistent_state

logger = logging.getLogger(__name__)


class MembershipSource(Protocol):
    def iter_principals(self) -> Iterable[Principal]: ...

    def payments_for(self, email: str) -> List[PaymentRecord]: ...


@dataclass
class ReconcileStats:
    started_at: str
    completed_at: Optional[str] = None
    principals_checked: int = 0
    inconsistent: List[str] = field(default_factory=list)
    errors: int = 0


def expected_badge(payments: Iterable[PaymentRecord]):
    """A principal's badge is the highest tier they have paid for, Bronze if none."""
    return highest(p.package_name for p in payments)


def run_badge_reconcile_cycle(source: MembershipSource) -> ReconcileStats:
    """Background drift detection between badges and payment history.

    Responsibilities:
    - flag principals whose badge differs from the highest purchased tier
    - flag history rows that reference the same transaction twice
    Flagged principals are alerted on, never auto-corrected.
    """

    stats = ReconcileStats(started_at=datetime.now(timezone.utc).isoformat())

    for principal in source.iter_principals():
        stats.principals_checked += 1
        try:
            payments = source.payments_for(principal.email)
        except Exception:
            logger.exception("Reading payment history failed", extra={"email": principal.email})
            stats.errors += 1
            continue

        detail = None
        references = [p.transaction_id for p in payments]
        expected = expected_badge(payments)
        if len(references) != len(set(references)):
            detail = "duplicate payment history rows for one transaction"
        elif principal.badge != expected:
            detail = (
                f"badge {principal.badge.value} does not match purchased tier {expected.value}"
            )

        if detail:
            stats.inconsistent.append(principal.email)
            emit_inconsistent_state(principal.email, detail)

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    logger.info("Badge reconcile cycle finished", extra={
        "principals_checked": stats.principals_checked,
        "inconsistent": len(stats.inconsistent),
        "errors": stats.errors,
    })
    return stats


def run_forever(source: MembershipSource, interval_seconds: int = 300) -> None:
    import time

    while True:
        run_badge_reconcile_cycle(source)
        time.sleep(interval_seconds)

"""
Alerts for entitlement evaluation failures, repeated deny events and
inconsistent badge/payment state.
"""

import logging
import time
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# In-memory counter for deny events per minute (sliding window)
_deny_counts: Dict[str, List[float]] = {}
DENY_THRESHOLD_PER_MIN = 10
DENY_WINDOW_SECONDS = 60


def emit_evaluation_failure(email: str, error_message: str) -> None:
    """Principal could not be loaded; decisions fail closed until it can."""
    logger.error(
        "Entitlement evaluation failure",
        extra={"email": email, "error": error_message},
    )


def emit_inconsistent_state(email: str, detail: str, payment_reference: Optional[str] = None) -> None:
    """Badge mutation and payment history disagree. Never expected; always page."""
    logger.critical(
        "Inconsistent membership state",
        extra={
            "email": email,
            "detail": detail,
            "payment_reference": payment_reference,
        },
    )


def _prune(cutoff: float) -> None:
    for email in list(_deny_counts):
        kept = [t for t in _deny_counts[email] if t > cutoff]
        if kept:
            _deny_counts[email] = kept
        else:
            _deny_counts.pop(email, None)


def _record_deny(email: str) -> int:
    now = time.time()
    # Prune older than 1 minute, for every principal
    _prune(now - DENY_WINDOW_SECONDS)
    _deny_counts.setdefault(email, []).append(now)
    return len(_deny_counts[email])


def record_deny_and_alert(email: str, action: str) -> None:
    """Record a deny event; alert if over threshold per minute."""
    count = _record_deny(email)
    if count >= DENY_THRESHOLD_PER_MIN:
        emit_deny_alert(email, action, count)


def emit_deny_alert(email: str, action: str, count: int) -> None:
    """Alert on repeated deny events (>N/min).

    A client that keeps issuing blocked actions is bypassing the gate UI.
    """
    logger.warning(
        "Repeated entitlement deny events",
        extra={"email": email, "action": action, "count_per_min": count},
    )


def reset_deny_counts() -> None:
    _deny_counts.clear()

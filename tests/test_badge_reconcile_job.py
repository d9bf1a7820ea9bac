import logging
from datetime import datetime, timezone

from entitlements.models import PaymentRecord, Principal
from membership.store import InMemoryMembershipStore
from workers.badge_reconcile_job import run_badge_reconcile_cycle


def test_reconcile_flags_badge_without_payment(config, caplog):
    store = InMemoryMembershipStore(config)
    store.upsert_principal("bronze@example.com")
    store.upsert_principal("paid@example.com")
    store.confirm_payment("paid@example.com", "Silver", 199, "pi_1")
    store.confirm_payment("paid@example.com", "Gold", 399, "pi_2")
    store.seed_principal({"email": "drifted@example.com", "badge": "Gold"})

    caplog.set_level(logging.CRITICAL, logger="monitoring.entitlement_alerts")
    stats = run_badge_reconcile_cycle(store)

    assert stats.principals_checked == 3
    assert stats.inconsistent == ["drifted@example.com"]
    assert stats.errors == 0
    assert stats.completed_at is not None
    assert "Inconsistent membership state" in caplog.text


def test_reconcile_flags_badge_below_purchased_tier(config):
    store = InMemoryMembershipStore(config)
    store.upsert_principal("paid@example.com")
    store.confirm_payment("paid@example.com", "Platinum", 599, "pi_1")
    store._principals["paid@example.com"]["badge"] = "Silver"

    stats = run_badge_reconcile_cycle(store)
    assert stats.inconsistent == ["paid@example.com"]


def test_reconcile_counts_read_errors():
    class _Source:
        def iter_principals(self):
            yield Principal(email="a@example.com")

        def payments_for(self, email):
            raise RuntimeError("history unavailable")

    stats = run_badge_reconcile_cycle(_Source())
    assert stats.errors == 1
    assert stats.inconsistent == []


def test_reconcile_reads_any_membership_source():
    paid_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    history = {
        "gold@example.com": [
            PaymentRecord("h1", "gold@example.com", "Silver", 199, "pi_1", paid_at),
            PaymentRecord("h2", "gold@example.com", "Gold", 399, "pi_2", paid_at),
        ],
        "twice@example.com": [
            PaymentRecord("h3", "twice@example.com", "Silver", 199, "pi_3", paid_at),
            PaymentRecord("h4", "twice@example.com", "Silver", 199, "pi_3", paid_at),
        ],
    }

    class _Source:
        def iter_principals(self):
            yield Principal(email="gold@example.com", badge="Gold")
            yield Principal(email="twice@example.com", badge="Silver")

        def payments_for(self, email):
            return history[email]

    stats = run_badge_reconcile_cycle(_Source())
    assert stats.principals_checked == 2
    assert stats.inconsistent == ["twice@example.com"]
    assert history["gold@example.com"][1].to_wire()["paidAt"] == "2024-05-01T00:00:00+00:00"

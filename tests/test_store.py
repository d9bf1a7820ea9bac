from datetime import datetime, timezone

import pytest

from membership.store import InMemoryMembershipStore, StoreError


def _raises(code, fn, *args, **kwargs):
    with pytest.raises(StoreError) as exc_info:
        fn(*args, **kwargs)
    assert exc_info.value.code == code
    return exc_info.value


def test_new_principal_starts_as_user_bronze(store):
    created, record = store.upsert_principal(" New@Example.com ", name="New")
    assert created is True
    assert (record["email"], record["role"], record["badge"]) == ("new@example.com", "user", "Bronze")

    created, again = store.upsert_principal("new@example.com")
    assert created is False
    assert again["_id"] == record["_id"]


def test_payment_session_checks_package_and_price(store, student):
    _raises("UNKNOWN_PACKAGE", store.create_payment_session, student, "Diamond", 100)
    _raises("UNKNOWN_PACKAGE", store.create_payment_session, student, "Bronze", 1)
    err = _raises("PRICE_MISMATCH", store.create_payment_session, student, "Silver", 1)
    assert err.status_code == 400
    _raises("VALIDATION_ERROR", store.create_payment_session, student, "Silver", None)


def test_payment_confirmation_is_idempotent(store, student):
    token = store.create_payment_session(student, "Silver", 199)
    first = store.confirm_payment(student, "Silver", 199, "pi_1", session_token=token)
    second = store.confirm_payment(student, "Silver", 199, "pi_1", session_token=token)

    assert first["replayed"] is False
    assert second == {"badge": "Silver", "paymentHistoryId": first["paymentHistoryId"], "replayed": True}
    assert len(store.payments_for(student)) == 1


def test_reference_cannot_be_reused_by_another_principal(store, student):
    store.upsert_principal("other@example.com")
    store.confirm_payment(student, "Silver", 199, "pi_1")
    err = _raises("CONFLICT", store.confirm_payment, "other@example.com", "Silver", 199, "pi_1")
    assert err.status_code == 409
    assert store.get_principal("other@example.com")["badge"] == "Bronze"


def test_confirmation_must_match_session(store, student):
    token = store.create_payment_session(student, "Silver", 199)
    _raises("SESSION_MISMATCH", store.confirm_payment, student, "Gold", 399, "pi_1", session_token=token)
    _raises("SESSION_MISMATCH", store.confirm_payment, student, "Silver", 199, "pi_1", session_token="forged")
    assert store.payments_for(student) == []
    assert store.get_principal(student)["badge"] == "Bronze"


def test_confirmation_rejects_wrong_price(store, student):
    err = _raises("PRICE_MISMATCH", store.confirm_payment, student, "Platinum", 1, "pi_1")
    assert err.status_code == 400
    assert store.payments_for(student) == []
    assert store.get_principal(student)["badge"] == "Bronze"


def test_confirmation_never_steps_down(store, student):
    gold = store.create_payment_session(student, "Gold", 399)
    silver = store.create_payment_session(student, "Silver", 199)
    store.confirm_payment(student, "Gold", 399, "pi_gold", session_token=gold)

    err = _raises("UPGRADE_BLOCKED", store.confirm_payment, student, "Silver", 199, "pi_silver", session_token=silver)
    assert err.status_code == 409
    assert err.message == "already has a higher tier"
    _raises("UPGRADE_BLOCKED", store.confirm_payment, student, "Gold", 399, "pi_gold_again")

    assert store.get_principal(student)["badge"] == "Gold"
    assert [p.transaction_id for p in store.payments_for(student)] == ["pi_gold"]


def test_confirmation_requires_reference(store, student):
    _raises("VALIDATION_ERROR", store.confirm_payment, student, "Silver", 199, "  ")


def test_change_role_rules(store, student, admin):
    admin_id = store.get_principal(admin)["_id"]
    student_id = store.get_principal(student)["_id"]

    _raises("FORBIDDEN", store.change_role, admin_id, False, student)
    _raises("SELF_ROLE_CHANGE", store.change_role, admin_id, False, admin)
    _raises("NOT_FOUND", store.change_role, "missing", True, admin)

    assert store.change_role(student_id, True, admin) == {"success": True}
    assert store.get_principal(student)["role"] == "admin"


def test_store_error_wire_shape():
    assert StoreError("nope", "FORBIDDEN", 403).to_dict() == {"code": "FORBIDDEN", "message": "nope"}


def test_clock_is_injectable(config):
    fixed = datetime(2024, 1, 2, tzinfo=timezone.utc)
    store = InMemoryMembershipStore(config, clock=lambda: fixed)
    _, record = store.upsert_principal("a@example.com")
    assert record["created_At"] == fixed.isoformat()

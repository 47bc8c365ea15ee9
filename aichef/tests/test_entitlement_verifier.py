"""Tests for client entitlement verification (recompute from the premiumUsers index)."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from aichef.core.errors import StoreError, VerificationError
from aichef.core.store import InMemoryDocumentStore
from aichef.features.entitlements.service import (
    LOAD_FAILED_MESSAGE,
    has_active_subscription,
    load_user_data,
    verification_due,
    verify_premium_status,
)
from aichef.models.entitlement import UserRecord, iso_timestamp


def _store(user_premium, index_active=None):
    collections = {
        "users": {
            "user_1": {"email": "ada@example.com", "isPremium": user_premium, "stripeCustomerId": "cus_123"},
        }
    }
    if index_active is not None:
        collections["premiumUsers"] = {
            "user_1": {"userId": "user_1", "stripeCustomerId": "cus_123", "active": index_active, "subscriptionActive": index_active},
        }
    return InMemoryDocumentStore(collections)


class FlakyStore(InMemoryDocumentStore):
    """Fails the first `failures` reads."""

    def __init__(self, initial, failures):
        super().__init__(initial)
        self.failures = failures

    def get(self, collection, doc_id):
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("deadline exceeded")
        return super().get(collection, doc_id)


def test_stale_flag_is_healed_from_index(now, test_settings):
    store = _store(user_premium=False, index_active=True)
    status = verify_premium_status(store, "user_1", now=now, cfg=test_settings)

    assert status.is_premium is True
    assert status.last_verified == "2024-05-01T12:00:00.000Z"
    assert store.get("users", "user_1").data["isPremium"] is True


def test_optimistic_flag_without_index_row_is_revoked(now, test_settings):
    store = _store(user_premium=True)
    status = verify_premium_status(store, "user_1", now=now, cfg=test_settings)

    assert status.is_premium is False
    assert store.get("users", "user_1").data["isPremium"] is False


def test_inactive_index_row_is_not_premium(now, test_settings):
    store = _store(user_premium=True, index_active=False)
    assert verify_premium_status(store, "user_1", now=now, cfg=test_settings).is_premium is False


def test_write_back_happens_even_when_unchanged(now, test_settings):
    store = _store(user_premium=True, index_active=True)
    verify_premium_status(store, "user_1", now=now, cfg=test_settings)

    user = store.get("users", "user_1").data
    assert user["isPremium"] is True
    assert user["lastVerified"] == "2024-05-01T12:00:00.000Z"
    assert store.write_count == 1


def test_missing_user_raises(now, test_settings):
    store = InMemoryDocumentStore()
    with pytest.raises(VerificationError) as exc:
        verify_premium_status(store, "ghost", now=now, cfg=test_settings)
    assert exc.value.message == "User document not found"


def test_store_failure_raises_verification_error(now, test_settings):
    store = FlakyStore({"users": {"user_1": {"isPremium": False}}}, failures=1)
    with pytest.raises(VerificationError) as exc:
        verify_premium_status(store, "user_1", now=now, cfg=test_settings)
    assert exc.value.message.startswith("Error verifying premium status")
    assert exc.value.status_code == 503


def test_has_active_subscription_without_customer(test_settings):
    assert has_active_subscription(InMemoryDocumentStore(), None, test_settings) is False


def test_load_user_data_retries_with_linear_backoff(now, test_settings):
    store = FlakyStore(
        {"users": {"user_1": {"isPremium": False, "stripeCustomerId": "cus_123", "savedRecipes": ["r1"]}}},
        failures=2,
    )
    sleep = Mock()

    user = load_user_data(store, "user_1", max_retries=3, retry_delay=1.0, sleep=sleep, now=now, cfg=test_settings)

    assert user.is_premium is False
    assert user.last_verified == "2024-05-01T12:00:00.000Z"
    assert user.model_extra["savedRecipes"] == ["r1"]
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]


def test_load_user_data_gives_up_after_retries(now, test_settings):
    store = FlakyStore({"users": {"user_1": {"isPremium": False}}}, failures=10)
    sleep = Mock()

    with pytest.raises(VerificationError) as exc:
        load_user_data(store, "user_1", max_retries=2, retry_delay=0.5, sleep=sleep, now=now, cfg=test_settings)

    assert exc.value.message == LOAD_FAILED_MESSAGE
    assert sleep.call_count == 2


def test_forced_refresh_failure_message(now, test_settings):
    store = InMemoryDocumentStore()
    with pytest.raises(VerificationError) as exc:
        load_user_data(store, "user_1", force_refresh=True, max_retries=0, sleep=Mock(), now=now, cfg=test_settings)
    assert exc.value.message == "Failed to refresh user data. Please try again."


def test_verification_due(now):
    fresh = UserRecord(last_verified=iso_timestamp(now - timedelta(minutes=5)))
    stale = UserRecord(last_verified=iso_timestamp(now - timedelta(hours=2)))

    assert verification_due(UserRecord(), now=now, max_age_seconds=3600) is True
    assert verification_due(fresh, now=now, max_age_seconds=3600) is False
    assert verification_due(stale, now=now, max_age_seconds=3600) is True


def test_status_route_returns_recomputed_flag(client, store):
    store.set("users", "user_1", {"email": "ada@example.com", "isPremium": False, "stripeCustomerId": "cus_123"})
    store.set("premiumUsers", "user_1", {"stripeCustomerId": "cus_123", "active": True, "subscriptionActive": True})

    resp = client.get("/api/premium/status", headers={"X-User-Id": "user_1"})

    assert resp.status_code == 200
    assert resp.json() == {"isPremium": True, "lastVerified": "2024-05-01T12:00:00.000Z"}


def test_refresh_route_reports_unavailable(client):
    resp = client.post("/api/premium/refresh", headers={"X-User-Id": "ghost"})

    assert resp.status_code == 503
    assert resp.json()["error"] == "Failed to refresh user data. Please try again."
    assert resp.json()["code"] == "verification_failed"


def test_verification_due_reads_max_age_from_settings(now, test_settings):
    test_settings.ENTITLEMENT_MAX_AGE_SECONDS = 60
    user = UserRecord(last_verified=iso_timestamp(now - timedelta(minutes=5)))

    assert verification_due(user, now=now, cfg=test_settings) is True

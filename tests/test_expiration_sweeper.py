"""
Expiration Sweeper Tests
========================

Single-user and batch expiration, batching bounds, and failure isolation.
"""

from datetime import timedelta

import pytest

from conftest import NOW
from app.services.expiration_sweeper import ExpirationSweeper, is_past_expiry


def _profile(status="active", expires_at=NOW - timedelta(hours=1)):
    return {"subscriptionStatus": status, "subscriptionExpiresAt": expires_at, "subscriptionTier": "premium"}


class TestIsPastExpiry:

    def test_active_and_past(self):
        assert is_past_expiry(_profile(), NOW) is True

    def test_future_expiry(self):
        assert is_past_expiry(_profile(expires_at=NOW + timedelta(seconds=1)), NOW) is False

    def test_expiry_equal_to_now_is_not_past(self):
        assert is_past_expiry(_profile(expires_at=NOW), NOW) is False

    def test_no_expiry(self):
        assert is_past_expiry(_profile(expires_at=None), NOW) is False

    def test_already_expired(self):
        assert is_past_expiry(_profile(status="expired"), NOW) is False

    def test_naive_timestamps_are_utc(self):
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert is_past_expiry(_profile(expires_at=naive), NOW) is True


class TestSweepOne:

    def test_expires_past_due_subscription(self, db, locations):
        db.docs["users/u1"] = _profile()

        changed = ExpirationSweeper(db, locations).sweep_one("u1", NOW)

        assert changed is True
        assert db.docs["users/u1"]["subscriptionStatus"] == "expired"
        assert db.docs["users/u1"]["subscriptionUpdatedAt"] == NOW

    def test_prefers_prefixed_location(self, db, locations):
        db.docs["dev_users/u1"] = _profile()
        db.docs["users/u1"] = _profile()

        ExpirationSweeper(db, locations).sweep_one("u1", NOW)

        assert db.docs["dev_users/u1"]["subscriptionStatus"] == "expired"
        assert db.docs["users/u1"]["subscriptionStatus"] == "active"

    def test_second_run_is_noop(self, db, locations):
        db.docs["users/u1"] = _profile()
        sweeper = ExpirationSweeper(db, locations)

        assert sweeper.sweep_one("u1", NOW) is True
        assert sweeper.sweep_one("u1", NOW) is False

        assert db.docs["users/u1"]["subscriptionStatus"] == "expired"
        assert db.documents_in("users/u1/subscriptions") == {}

    def test_future_expiry_untouched(self, db, locations):
        db.docs["users/u1"] = _profile(expires_at=NOW + timedelta(days=3))

        assert ExpirationSweeper(db, locations).sweep_one("u1", NOW) is False
        assert db.docs["users/u1"]["subscriptionStatus"] == "active"

    def test_missing_profile_is_noop(self, db, locations):
        assert ExpirationSweeper(db, locations).sweep_one("ghost", NOW) is False
        assert db.reads == ["dev_users/ghost", "users/ghost"]


class TestSweepAll:

    def test_expires_only_past_due_active_records(self, db, locations):
        db.docs["users/due"] = _profile()
        db.docs["users/future"] = _profile(expires_at=NOW + timedelta(days=1))
        db.docs["users/open"] = _profile(expires_at=None)
        db.docs["users/gone"] = _profile(status="expired")
        db.docs["dev_users/due2"] = _profile()

        report = ExpirationSweeper(db, locations).sweep_all(NOW)

        assert report.expired == 2
        assert report.failed == 0
        assert db.docs["users/due"]["subscriptionStatus"] == "expired"
        assert db.docs["dev_users/due2"]["subscriptionStatus"] == "expired"
        assert db.docs["users/future"]["subscriptionStatus"] == "active"
        assert db.docs["users/open"]["subscriptionStatus"] == "active"

    def test_1200_records_commit_in_three_batches(self, db, locations):
        for i in range(1200):
            db.docs[f"users/u{i}"] = _profile()

        report = ExpirationSweeper(db, locations).sweep_all(NOW)

        assert db.committed_batches == [500, 500, 200]
        assert report.batches_committed == 3
        assert report.expired == 1200

    def test_exact_multiple_has_no_empty_trailing_batch(self, db, locations):
        for i in range(10):
            db.docs[f"users/u{i}"] = _profile()

        ExpirationSweeper(db, locations, batch_size=5).sweep_all(NOW)

        assert db.committed_batches == [5, 5]

    def test_bad_record_does_not_stop_sweep(self, db, locations):
        db.docs["users/bad"] = _profile(expires_at="not-a-timestamp")
        db.docs["users/good"] = _profile()

        report = ExpirationSweeper(db, locations).sweep_all(NOW)

        assert report.failed == 1
        assert report.expired == 1
        assert db.docs["users/good"]["subscriptionStatus"] == "expired"

    def test_failed_commit_does_not_stop_later_batches(self, db, locations):
        for i in range(4):
            db.docs[f"users/u{i}"] = _profile()
        db.commit_failures.append(RuntimeError("deadline exceeded"))

        report = ExpirationSweeper(db, locations, batch_size=2).sweep_all(NOW)

        assert report.failed == 2
        assert report.expired == 2
        assert db.committed_batches == [2]

    def test_rerun_is_idempotent(self, db, locations):
        for i in range(3):
            db.docs[f"users/u{i}"] = _profile()
        sweeper = ExpirationSweeper(db, locations)

        sweeper.sweep_all(NOW)
        report = sweeper.sweep_all(NOW)

        assert report.scanned == 0
        assert report.expired == 0
        assert db.committed_batches == [3]

    def test_query_failure_propagates(self, db, locations):
        db.query_failure = RuntimeError("index missing")

        with pytest.raises(RuntimeError, match="index missing"):
            ExpirationSweeper(db, locations).sweep_all(NOW)

    def test_batch_size_bounded_by_firestore_limit(self, db, locations):
        with pytest.raises(ValueError):
            ExpirationSweeper(db, locations, batch_size=501)

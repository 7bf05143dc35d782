"""
Expiration sweeps: move active subscriptions past their expiry to expired.

Expiry is a clock comparison against previously validated data; the sweeper
never calls a store API.
"""
import logging
from datetime import datetime
from typing import List

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.models.subscription import (
    FIELD_EXPIRES_AT,
    FIELD_STATUS,
    FIELD_UPDATED_AT,
    SubscriptionStatus,
    SweepReport,
)
from app.services.subscription_writer import ProfileLocation, dedupe_locations, find_profile
from app.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 500


def is_past_expiry(data: dict, now: datetime) -> bool:
    """True for an active subscription whose expiry is before ``now``."""
    if data.get(FIELD_STATUS) != SubscriptionStatus.ACTIVE.value:
        return False
    expires_at = data.get(FIELD_EXPIRES_AT)
    if expires_at is None:
        return False
    return ensure_utc(expires_at) < ensure_utc(now)


def _expired_update() -> dict:
    return {
        FIELD_STATUS: SubscriptionStatus.EXPIRED.value,
        FIELD_UPDATED_AT: firestore.SERVER_TIMESTAMP,
    }


class ExpirationSweeper:
    """Single-user and batch expiration of subscriptions."""

    def __init__(self, db, locations: List[ProfileLocation], batch_size: int = MAX_BATCH_SIZE):
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self.db = db
        self.locations = dedupe_locations(locations)
        self.batch_size = batch_size

    def sweep_one(self, user_id: str, now: datetime) -> bool:
        """Expire one user's subscription if due. Returns True if it changed."""
        found = find_profile(self.db, self.locations, user_id)
        if found is None:
            logger.warning(f"User {user_id} not found")
            return False

        _, snapshot = found
        if not is_past_expiry(snapshot.to_dict() or {}, now):
            return False

        snapshot.reference.update(_expired_update())
        logger.info(f"Marked subscription as expired for user {user_id}")
        return True

    def sweep_all(self, now: datetime) -> SweepReport:
        """
        Expire every active subscription past ``now``.

        Updates are committed in batches of at most ``batch_size``. A bad
        record or a failed batch commit is logged and counted; the sweep
        carries on. Query failures propagate. Batches already committed stay
        committed, and re-running the sweep is harmless.
        """
        report = SweepReport()

        for location in self.locations:
            query = (
                self.db.collection(location.collection)
                .where(filter=FieldFilter(FIELD_STATUS, "==", SubscriptionStatus.ACTIVE.value))
                .where(filter=FieldFilter(FIELD_EXPIRES_AT, "!=", None))
            )

            batch = self.db.batch()
            pending: List[str] = []

            for snapshot in query.stream():
                report.scanned += 1
                try:
                    if not is_past_expiry(snapshot.to_dict() or {}, now):
                        continue
                    batch.update(snapshot.reference, _expired_update())
                    pending.append(snapshot.id)
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Error checking subscription for user {snapshot.id}: {e}")
                    continue

                logger.debug(f"Queued expiration for user {snapshot.id}")

                if len(pending) >= self.batch_size:
                    self._commit(batch, pending, report)
                    batch = self.db.batch()
                    pending = []

            if pending:
                self._commit(batch, pending, report)

        logger.info(
            f"Completed subscription expiration check. Scanned {report.scanned}, "
            f"expired {report.expired}, failed {report.failed}, "
            f"batches {report.batches_committed}."
        )
        return report

    def _commit(self, batch, user_ids: List[str], report: SweepReport):
        try:
            batch.commit()
        except Exception as e:
            report.failed += len(user_ids)
            logger.error(f"Failed to commit expiration batch of {len(user_ids)} updates: {e}")
            return
        report.expired += len(user_ids)
        report.batches_committed += 1

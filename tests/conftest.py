"""
Shared fixtures: an in-memory Firestore double and a fixed clock.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from google.api_core.exceptions import NotFound
from google.cloud.firestore import SERVER_TIMESTAMP

from app.models.subscription import (
    Platform,
    SubscriptionRecord,
    SubscriptionStatus,
    TIER_HUB_TYPES,
    SubscriptionTier,
)
from app.services.subscription_writer import ProfileLocation


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory Firestore
# ---------------------------------------------------------------------------

class FakeSnapshot:
    def __init__(self, reference: "FakeDocumentRef", data: Optional[Dict[str, Any]]):
        self.reference = reference
        self.id = reference.id
        self.exists = data is not None
        self._data = dict(data) if data is not None else None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", path: str):
        self.db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def get(self) -> FakeSnapshot:
        self.db.reads.append(self.path)
        return FakeSnapshot(self, self.db.docs.get(self.path))

    def set(self, data: Dict[str, Any]):
        self.db.docs[self.path] = self.db.resolve(data)

    def update(self, data: Dict[str, Any]):
        self.db.update_attempts.append(self.path)
        failure = self.db.update_failures.get(self.path)
        if failure is not None:
            raise failure
        if self.path not in self.db.docs:
            raise NotFound(f"No document to update: {self.path}")
        self.db.docs[self.path].update(self.db.resolve(data))

    def collection(self, name: str) -> "FakeQuery":
        return FakeQuery(self.db, f"{self.path}/{name}")


class FakeQuery:
    def __init__(self, db: "FakeFirestore", collection: str, filters=None, order=None, limit_to=None):
        self.db = db
        self.collection_path = collection
        self.filters = list(filters or [])
        self.order = order
        self.limit_to = limit_to

    def _copy(self, **changes) -> "FakeQuery":
        params = dict(filters=self.filters, order=self.order, limit_to=self.limit_to)
        params.update(changes)
        return FakeQuery(self.db, self.collection_path, **params)

    def where(self, filter=None):
        return self._copy(filters=self.filters + [filter])

    def order_by(self, field: str, direction: str = "ASCENDING"):
        return self._copy(order=(field, direction))

    def limit(self, count: int):
        return self._copy(limit_to=count)

    def add(self, data: Dict[str, Any]):
        ref = FakeDocumentRef(self.db, f"{self.collection_path}/auto{next(self.db.ids)}")
        ref.set(data)
        return self.db.clock(), ref

    def _matches(self, data: Dict[str, Any]) -> bool:
        for field_filter in self.filters:
            value = data.get(field_filter.field_path)
            if field_filter.op_string == "==" and value != field_filter.value:
                return False
            if field_filter.op_string == "!=" and (
                field_filter.field_path not in data or value == field_filter.value
            ):
                return False
        return True

    def stream(self):
        if self.db.query_failure is not None:
            raise self.db.query_failure
        prefix = self.collection_path + "/"
        snapshots = [
            FakeSnapshot(FakeDocumentRef(self.db, path), data)
            for path, data in self.db.docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):] and self._matches(data)
        ]
        if self.order is not None:
            field, direction = self.order
            snapshots.sort(key=lambda s: s.to_dict().get(field), reverse=direction == "DESCENDING")
        if self.limit_to is not None:
            snapshots = snapshots[: self.limit_to]
        return iter(snapshots)


class FakeBatch:
    def __init__(self, db: "FakeFirestore"):
        self.db = db
        self.updates = []

    def update(self, ref: FakeDocumentRef, data: Dict[str, Any]):
        self.updates.append((ref, data))

    def commit(self):
        if self.db.commit_failures:
            raise self.db.commit_failures.pop(0)
        for ref, data in self.updates:
            self.db.docs[ref.path].update(self.db.resolve(data))
        self.db.committed_batches.append(len(self.updates))


class FakeFirestore:
    """Just enough of google.cloud.firestore.Client for the services."""

    def __init__(self, clock=lambda: NOW):
        self.clock = clock
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.ids = itertools.count(1)
        self.reads: List[str] = []
        self.update_attempts: List[str] = []
        self.update_failures: Dict[str, Exception] = {}
        self.commit_failures: List[Exception] = []
        self.committed_batches: List[int] = []
        self.query_failure: Optional[Exception] = None

    def resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {k: (self.clock() if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    def document(self, path: str) -> FakeDocumentRef:
        return FakeDocumentRef(self, path)

    def collection(self, path: str) -> FakeQuery:
        return FakeQuery(self, path)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    def documents_in(self, collection: str) -> Dict[str, Dict[str, Any]]:
        prefix = collection + "/"
        return {
            path: data for path, data in self.docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def locations() -> List[ProfileLocation]:
    return [ProfileLocation("prefixed", "dev_users"), ProfileLocation("unprefixed", "users")]


def fixed_clock():
    return NOW


def make_record(
    *,
    platform: Platform = Platform.GOOGLE,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    expires_at: Optional[datetime] = NOW + timedelta(days=30),
    purchase_date: datetime = NOW - timedelta(days=1),
    token: str = "tok1",
) -> SubscriptionRecord:
    return SubscriptionRecord(
        tier=SubscriptionTier.PREMIUM,
        status=status,
        expires_at=expires_at,
        purchase_date=purchase_date,
        platform=platform,
        entitled_hub_types=TIER_HUB_TYPES[SubscriptionTier.PREMIUM],
        purchase_token=token,
    )

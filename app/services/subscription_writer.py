"""
Persists validated subscriptions onto user profiles in Firestore.

User profiles were migrated between two collection conventions (prefixed and
unprefixed). Writes walk an ordered list of ProfileLocations: a not-found
failure moves on to the next location, any other failure propagates at once.
Every successful profile write is followed by one append to the user's
``subscriptions`` history subcollection.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.api_core.exceptions import NotFound
from google.cloud import firestore

from app.core.config import Settings
from app.core.errors import PersistenceError
from app.models.subscription import (
    FIELD_HISTORY_UPDATED_AT,
    FIELD_UPDATED_AT,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)

HISTORY_SUBCOLLECTION = "subscriptions"
GRPC_NOT_FOUND = 5


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    OTHER = "other"


def classify_failure(exc: Exception) -> FailureKind:
    """Map a store exception to the fallback policy's failure classes."""
    if isinstance(exc, NotFound) or getattr(exc, "code", None) == GRPC_NOT_FOUND:
        return FailureKind.NOT_FOUND
    return FailureKind.OTHER


@dataclass(frozen=True)
class ProfileLocation:
    """One storage convention for user profile documents."""

    name: str
    collection: str

    def path(self, user_id: str) -> str:
        return f"{self.collection}/{user_id}"


def build_profile_locations(settings: Settings) -> List[ProfileLocation]:
    """Prefixed collection first, then the unprefixed one; duplicates collapse."""
    candidates = [
        ProfileLocation("prefixed", f"{settings.FIRESTORE_COLLECTION_PREFIX}users"),
        ProfileLocation("unprefixed", "users"),
    ]
    return dedupe_locations(candidates)


def dedupe_locations(locations: Iterable[ProfileLocation]) -> List[ProfileLocation]:
    seen = set()
    unique = []
    for location in locations:
        if location.collection in seen:
            continue
        seen.add(location.collection)
        unique.append(location)
    return unique


def find_profile(db, locations: List[ProfileLocation], user_id: str) -> Optional[Tuple[ProfileLocation, Any]]:
    """First existing profile snapshot across ``locations``, with its location."""
    for location in locations:
        snapshot = db.document(location.path(user_id)).get()
        if snapshot.exists:
            return location, snapshot
    return None


class SubscriptionWriter:
    """Writes the current subscription projection and its history entry."""

    def __init__(self, db, locations: List[ProfileLocation]):
        if not locations:
            raise ValueError("At least one profile location is required")
        self.db = db
        self.locations = list(locations)

    def apply(self, user_id: str, record: SubscriptionRecord) -> ProfileLocation:
        """
        Update the user's profile with ``record`` and append a history entry.

        Returns the location that accepted the write. Raises PersistenceError
        when every location reports the profile as not found.
        """
        document = record.to_document()
        update_data = {**document, FIELD_UPDATED_AT: firestore.SERVER_TIMESTAMP}

        location = self._update_profile(user_id, update_data)

        history_entry = {**document, FIELD_HISTORY_UPDATED_AT: firestore.SERVER_TIMESTAMP}
        self.db.collection(f"{location.path(user_id)}/{HISTORY_SUBCOLLECTION}").add(history_entry)

        logger.info(f"Subscription updated for user {user_id}")
        return location

    def _update_profile(self, user_id: str, update_data: Dict[str, Any]) -> ProfileLocation:
        attempts = []
        for location in self.locations:
            try:
                self.db.document(location.path(user_id)).update(update_data)
            except Exception as e:
                if classify_failure(e) is not FailureKind.NOT_FOUND:
                    logger.error(
                        f"Error updating subscription for user {user_id} ({location.name} collection): {e}"
                    )
                    raise
                logger.warning(f"Profile for user {user_id} not found in {location.name} collection")
                attempts.append(location.path(user_id))
                continue

            logger.info(f"Updated subscription for user {user_id} ({location.name} collection)")
            return location

        logger.error(f"No profile document accepted the subscription for user {user_id}: {attempts}")
        raise PersistenceError(
            f"User profile not found for {user_id}",
            details={"attempted_paths": attempts},
        )

    def read(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Current subscription projection, or None if absent."""
        found = find_profile(self.db, self.locations, user_id)
        if found is None:
            return None
        _, snapshot = found
        return SubscriptionRecord.from_document(snapshot.to_dict() or {})

    def history(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """History entries for the user, newest first."""
        found = find_profile(self.db, self.locations, user_id)
        if found is None:
            return []
        location, _ = found
        query = (
            self.db.collection(f"{location.path(user_id)}/{HISTORY_SUBCOLLECTION}")
            .order_by(FIELD_HISTORY_UPDATED_AT, direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [snapshot.to_dict() for snapshot in query.stream()]

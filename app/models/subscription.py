"""
Subscription domain models.

SubscriptionRecord is the platform-agnostic result of a successful receipt
validation. It serializes by alias to the field names stored on the user
profile document and returned to the mobile client.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from app.utils.time_utils import ensure_utc, to_utc_isoformat


class SubscriptionTier(str, Enum):
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class Platform(str, Enum):
    GOOGLE = "google"
    APPLE = "apple"


# Hub types unlocked by each tier
TIER_HUB_TYPES: Dict[SubscriptionTier, List[str]] = {
    SubscriptionTier.PREMIUM: ["extended_family", "homeschooling", "coparenting"],
}

# Profile document fields
FIELD_TIER = "subscriptionTier"
FIELD_STATUS = "subscriptionStatus"
FIELD_EXPIRES_AT = "subscriptionExpiresAt"
FIELD_PURCHASE_DATE = "subscriptionPurchaseDate"
FIELD_PLATFORM = "subscriptionPlatform"
FIELD_HUB_TYPES = "premiumHubTypes"
FIELD_PURCHASE_TOKEN = "subscriptionPurchaseToken"
FIELD_UPDATED_AT = "subscriptionUpdatedAt"

# History entry timestamp
FIELD_HISTORY_UPDATED_AT = "updatedAt"


class SubscriptionRecord(BaseModel):
    """Canonical subscription state for one user."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    tier: SubscriptionTier = Field(SubscriptionTier.PREMIUM, alias=FIELD_TIER)
    status: SubscriptionStatus = Field(..., alias=FIELD_STATUS)
    expires_at: Optional[datetime] = Field(None, alias=FIELD_EXPIRES_AT)
    purchase_date: datetime = Field(..., alias=FIELD_PURCHASE_DATE)
    platform: Platform = Field(..., alias=FIELD_PLATFORM)
    entitled_hub_types: List[str] = Field(default_factory=list, alias=FIELD_HUB_TYPES)
    purchase_token: str = Field(..., alias=FIELD_PURCHASE_TOKEN)

    @field_validator("expires_at", "purchase_date")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_serializer("expires_at", "purchase_date", when_used="json")
    def _serialize_dates(self, value: Optional[datetime]) -> Optional[str]:
        return to_utc_isoformat(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < ensure_utc(now)

    def to_document(self) -> Dict[str, Any]:
        """Firestore field map; datetimes are stored as native timestamps."""
        return {
            FIELD_TIER: self.tier.value,
            FIELD_STATUS: self.status.value,
            FIELD_EXPIRES_AT: self.expires_at,
            FIELD_PURCHASE_DATE: self.purchase_date,
            FIELD_PLATFORM: self.platform.value,
            FIELD_HUB_TYPES: list(self.entitled_hub_types),
            FIELD_PURCHASE_TOKEN: self.purchase_token,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> Optional["SubscriptionRecord"]:
        """Parse a profile or history document; None if it holds no subscription."""
        if not data or not data.get(FIELD_STATUS) or not data.get(FIELD_PURCHASE_DATE):
            return None
        return cls.model_validate({
            FIELD_TIER: data.get(FIELD_TIER) or SubscriptionTier.PREMIUM.value,
            FIELD_STATUS: data[FIELD_STATUS],
            FIELD_EXPIRES_AT: data.get(FIELD_EXPIRES_AT),
            FIELD_PURCHASE_DATE: data[FIELD_PURCHASE_DATE],
            FIELD_PLATFORM: data.get(FIELD_PLATFORM),
            FIELD_HUB_TYPES: data.get(FIELD_HUB_TYPES) or [],
            FIELD_PURCHASE_TOKEN: data.get(FIELD_PURCHASE_TOKEN) or "",
        })


class ValidationResult(BaseModel):
    """Outcome of a receipt validation. Transient, never persisted."""

    valid: bool
    subscription_data: Optional[SubscriptionRecord] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, record: SubscriptionRecord) -> "ValidationResult":
        return cls(valid=True, subscription_data=record)

    @classmethod
    def failure(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


class SweepReport(BaseModel):
    """Counters from one batch expiration sweep."""

    scanned: int = 0
    expired: int = 0
    failed: int = 0
    batches_committed: int = 0

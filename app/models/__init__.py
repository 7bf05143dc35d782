"""
Domain models for the FamilyHub subscription backend
"""
from app.models.subscription import (
    Platform,
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionTier,
    SweepReport,
    TIER_HUB_TYPES,
    ValidationResult,
)

__all__ = [
    "Platform",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "SubscriptionTier",
    "SweepReport",
    "TIER_HUB_TYPES",
    "ValidationResult",
]

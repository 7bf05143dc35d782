"""
Subscription request/response schemas.

Request fields are optional at the schema level so that missing values are
reported as a single invalid-argument error naming every missing field.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from app.models.subscription import SubscriptionRecord


class GooglePlayValidationRequest(BaseModel):
    """Play Store purchase to validate"""
    purchaseToken: Optional[str] = Field(None, description="Purchase token from Google Play")
    productId: Optional[str] = Field(None, description="Subscription product id, e.g. premium_yearly")
    userId: Optional[str] = Field(None, description="User the purchase belongs to")


class AppStoreValidationRequest(BaseModel):
    """App Store receipt to validate"""
    receiptData: Optional[str] = Field(None, description="Base64 encoded App Store receipt")
    productId: Optional[str] = Field(None, description="Subscription product id, e.g. premium_monthly")
    userId: Optional[str] = Field(None, description="User the purchase belongs to")


class CheckSubscriptionRequest(BaseModel):
    """On-demand expiration check for one user"""
    userId: Optional[str] = Field(None, description="User to check")


class ValidationResponse(BaseModel):
    """Result of a receipt validation"""
    valid: bool
    subscriptionData: Optional[SubscriptionRecord] = None
    error: Optional[str] = None


class CheckSubscriptionResponse(BaseModel):
    success: bool = True


class SubscriptionStatusResponse(BaseModel):
    """Current subscription projection for a user"""
    userId: str
    subscription: Optional[SubscriptionRecord] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)

"""
Subscription API endpoints
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_current_uid, get_subscription_service
from app.schemas.subscription import (
    AppStoreValidationRequest,
    CheckSubscriptionRequest,
    CheckSubscriptionResponse,
    GooglePlayValidationRequest,
    SubscriptionStatusResponse,
    ValidationResponse,
)
from app.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/google-play/validate", response_model=ValidationResponse, response_model_exclude_none=True)
async def validate_google_play_receipt(
    request: GooglePlayValidationRequest,
    caller_uid: Optional[str] = Depends(get_current_uid),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Validate a Google Play purchase token and update the user's subscription"""
    return await service.validate_google_play_receipt(caller_uid, request.model_dump())


@router.post("/app-store/validate", response_model=ValidationResponse, response_model_exclude_none=True)
async def validate_app_store_receipt(
    request: AppStoreValidationRequest,
    caller_uid: Optional[str] = Depends(get_current_uid),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Validate an App Store receipt and update the user's subscription"""
    return await service.validate_app_store_receipt(caller_uid, request.model_dump())


@router.post("/check", response_model=CheckSubscriptionResponse)
def check_user_subscription(
    request: CheckSubscriptionRequest,
    caller_uid: Optional[str] = Depends(get_current_uid),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Expire the caller's subscription now if it is past due"""
    return service.check_user_subscription(caller_uid, request.model_dump())


@router.get("/{user_id}", response_model=SubscriptionStatusResponse)
def get_subscription(
    user_id: str,
    history_limit: int = Query(20, ge=0, le=100),
    caller_uid: Optional[str] = Depends(get_current_uid),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current subscription and recent history for the caller"""
    return service.get_subscription(caller_uid, user_id, history_limit=history_limit)

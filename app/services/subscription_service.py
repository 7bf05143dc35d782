"""
Subscription request handling: authentication, input checks, ownership,
then verify and persist.
"""
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from app.core.errors import (
    InternalError,
    InvalidArgument,
    PermissionDenied,
    SubscriptionError,
    Unauthenticated,
)
from app.models.subscription import Platform, ValidationResult
from app.services.expiration_sweeper import ExpirationSweeper
from app.services.receipt_verifier import ReceiptVerifier
from app.services.subscription_writer import SubscriptionWriter
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


def require_caller(caller_uid: Optional[str], operation: str, payload: Mapping[str, Any]) -> str:
    if not caller_uid:
        logger.warning(f"Unauthenticated {operation} request for user {payload.get('userId')}")
        raise Unauthenticated()
    return caller_uid


def require_fields(payload: Mapping[str, Any], fields: Sequence[str], operation: str):
    missing = [field for field in fields if not payload.get(field)]
    if missing:
        logger.warning(f"Rejected {operation} request for user {payload.get('userId')}: missing {missing}")
        raise InvalidArgument.missing_fields(missing)


def require_owner(caller_uid: str, user_id: str, operation: str, message: str):
    if user_id != caller_uid:
        logger.warning(f"Denied {operation} for user {user_id}: caller is {caller_uid}")
        raise PermissionDenied(message)


class SubscriptionService:
    """Entry points behind the subscription API."""

    def __init__(
        self,
        verifiers: Mapping[Platform, ReceiptVerifier],
        writer: SubscriptionWriter,
        sweeper: ExpirationSweeper,
        clock: Callable = utc_now,
    ):
        self.verifiers = verifiers
        self.writer = writer
        self.sweeper = sweeper
        self.clock = clock

    async def validate_google_play_receipt(self, caller_uid: Optional[str], payload: Mapping[str, Any]) -> Dict[str, Any]:
        operation = "validateGooglePlayReceipt"
        caller_uid = require_caller(caller_uid, operation, payload)
        require_fields(payload, ("purchaseToken", "productId", "userId"), operation)
        return await self._validate(
            Platform.GOOGLE, operation, caller_uid, payload["userId"], payload["purchaseToken"], payload["productId"]
        )

    async def validate_app_store_receipt(self, caller_uid: Optional[str], payload: Mapping[str, Any]) -> Dict[str, Any]:
        operation = "validateAppStoreReceipt"
        caller_uid = require_caller(caller_uid, operation, payload)
        require_fields(payload, ("receiptData", "productId", "userId"), operation)
        return await self._validate(
            Platform.APPLE, operation, caller_uid, payload["userId"], payload["receiptData"], payload["productId"]
        )

    async def _validate(
        self, platform: Platform, operation: str, caller_uid: str, user_id: str, proof: str, product_id: str
    ) -> Dict[str, Any]:
        require_owner(caller_uid, user_id, operation, "User ID does not match authenticated user")

        try:
            result: ValidationResult = await self.verifiers[platform].validate(proof, product_id)

            if result.valid and result.subscription_data is not None:
                await run_in_threadpool(self.writer.apply, user_id, result.subscription_data)
            elif not result.valid:
                logger.info(f"Receipt rejected for user {user_id} ({platform.value}): {result.error}")

            return {
                "valid": result.valid,
                "subscriptionData": result.subscription_data,
                "error": result.error,
            }

        except SubscriptionError:
            logger.error(f"{operation} failed for user {user_id}", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Error during {operation} for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to validate purchase", details=str(e)) from e

    def check_user_subscription(self, caller_uid: Optional[str], payload: Mapping[str, Any]) -> Dict[str, Any]:
        operation = "checkUserSubscription"
        caller_uid = require_caller(caller_uid, operation, payload)
        require_fields(payload, ("userId",), operation)
        user_id = payload["userId"]

        # No admin override: a user may only check their own subscription
        require_owner(caller_uid, user_id, operation, "User can only check their own subscription")

        try:
            self.sweeper.sweep_one(user_id, self.clock())
        except Exception as e:
            logger.error(f"Error checking user subscription for {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to check subscription", details=str(e)) from e

        return {"success": True}

    def get_subscription(self, caller_uid: Optional[str], user_id: str, history_limit: int = 20) -> Dict[str, Any]:
        operation = "getSubscription"
        caller_uid = require_caller(caller_uid, operation, {"userId": user_id})
        require_owner(caller_uid, user_id, operation, "User can only read their own subscription")

        try:
            return {
                "userId": user_id,
                "subscription": self.writer.read(user_id),
                "history": self.writer.history(user_id, limit=history_limit),
            }
        except Exception as e:
            logger.error(f"Error reading subscription for {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to read subscription", details=str(e)) from e

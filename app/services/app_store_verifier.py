"""
App Store receipt verification via the verifyReceipt endpoint.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.models.subscription import Platform, ValidationResult
from app.services.receipt_verifier import LiveVerifier
from app.utils.time_utils import from_millis

logger = logging.getLogger(__name__)

# verifyReceipt status codes
STATUS_OK = 0
STATUS_SANDBOX_RECEIPT_ON_PRODUCTION = 21007


def select_latest_purchase(in_app: List[Dict[str, Any]], product_id: str) -> Optional[Dict[str, Any]]:
    """
    Most recent line item for ``product_id``.

    Ties on purchase_date_ms keep the earliest item in receipt order.
    """
    latest = None
    latest_ms = None
    for item in in_app:
        if item.get("product_id") != product_id:
            continue
        purchase_ms = int(item.get("purchase_date_ms") or 0)
        if latest is None or purchase_ms > latest_ms:
            latest, latest_ms = item, purchase_ms
    return latest


class AppStoreVerifier(LiveVerifier):
    """Validates base64 App Store receipts for subscription products."""

    platform = Platform.APPLE

    def __init__(
        self,
        shared_secret: str,
        production_url: str = "https://buy.itunes.apple.com/verifyReceipt",
        sandbox_url: str = "https://sandbox.itunes.apple.com/verifyReceipt",
        use_sandbox: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.shared_secret = shared_secret
        self.production_url = production_url
        self.sandbox_url = sandbox_url
        self.use_sandbox = use_sandbox
        self.transport = transport

    async def _post_receipt(self, client: httpx.AsyncClient, url: str, receipt_data: str) -> Dict[str, Any]:
        response = await client.post(
            url,
            json={
                "receipt-data": receipt_data,
                "password": self.shared_secret,
                "exclude-old-transactions": False,
            },
        )
        response.raise_for_status()
        return response.json()

    async def _verify_receipt(self, receipt_data: str) -> Dict[str, Any]:
        """Post to production (or sandbox if configured); retry once on sandbox receipts."""
        async with httpx.AsyncClient(transport=self.transport) as client:
            if self.use_sandbox:
                return await self._post_receipt(client, self.sandbox_url, receipt_data)

            result = await self._post_receipt(client, self.production_url, receipt_data)
            if result.get("status") == STATUS_SANDBOX_RECEIPT_ON_PRODUCTION:
                logger.info("Sandbox receipt sent to production, retrying against sandbox")
                result = await self._post_receipt(client, self.sandbox_url, receipt_data)
            return result

    async def _validate_live(self, receipt_data: str, product_id: str) -> ValidationResult:
        result = await self._verify_receipt(receipt_data)

        status = result.get("status")
        if status != STATUS_OK:
            return ValidationResult.failure(f"Receipt validation failed with status: {status}")

        in_app = (result.get("receipt") or {}).get("in_app") or []
        latest = select_latest_purchase(in_app, product_id)
        if latest is None:
            return ValidationResult.failure("Product not found in receipt")

        expires_at = from_millis(latest.get("expires_date_ms"))
        if expires_at is None or expires_at <= self.clock():
            return ValidationResult.failure("Subscription has expired")

        purchase_date = from_millis(latest.get("purchase_date_ms")) or self.clock()

        logger.info(f"App Store purchase verified for {product_id}, expires {expires_at}")
        return ValidationResult.success(self._active_record(receipt_data, purchase_date, expires_at))

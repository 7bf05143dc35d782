"""
Google Play subscription verification via the Play Developer API
(purchases.subscriptionsv2).
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import google_auth_httplib2
import httplib2
from google.api_core import datetime_helpers
from google.oauth2 import service_account
from googleapiclient.discovery import build

from app.models.subscription import Platform, ValidationResult
from app.services.receipt_verifier import LiveVerifier, plan_duration
from app.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# The only subscriptionState that counts as payment received
SUBSCRIPTION_STATE_ACTIVE = "SUBSCRIPTION_STATE_ACTIVE"


def find_line_item(purchase: Dict[str, Any], product_id: str) -> Optional[Dict[str, Any]]:
    """First line item of a subscriptionsv2 purchase for ``product_id``."""
    for item in purchase.get("lineItems") or []:
        if item.get("productId") == product_id:
            return item
    return None


def parse_rfc3339(value: Optional[str]):
    if not value:
        return None
    return ensure_utc(datetime_helpers.from_rfc3339(value))


class GooglePlayVerifier(LiveVerifier):
    """Validates Play Store purchase tokens for subscription products.

    httplib2 connections are not thread-safe, so every lookup executes on
    its own authorized ``Http``. The discovery ``Resource`` is shared only
    to build requests.
    """

    platform = Platform.GOOGLE

    def __init__(
        self,
        service_account_email: str,
        private_key: str,
        package_name: str,
        http_factory: Optional[Callable[[], Any]] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.service_account_email = service_account_email
        self.private_key = private_key
        self.package_name = package_name
        self._http_factory = http_factory or self._authorized_http
        self._publisher = None

    def _authorized_http(self):
        creds = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": self.service_account_email,
                "private_key": self.private_key,
                "token_uri": GOOGLE_TOKEN_URI,
            },
            scopes=[ANDROID_PUBLISHER_SCOPE],
        )
        return google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http())

    def _get_publisher(self):
        """Android Publisher v3 resource from the bundled discovery document."""
        if self._publisher is None:
            self._publisher = build(
                "androidpublisher",
                "v3",
                http=httplib2.Http(),
                static_discovery=True,
                cache_discovery=False,
            )
        return self._publisher

    def _fetch_purchase(self, purchase_token: str) -> Dict[str, Any]:
        request = self._get_publisher().purchases().subscriptionsv2().get(
            packageName=self.package_name,
            token=purchase_token,
        )
        return request.execute(http=self._http_factory())

    async def _validate_live(self, purchase_token: str, product_id: str) -> ValidationResult:
        self._get_publisher()
        purchase = await asyncio.to_thread(self._fetch_purchase, purchase_token)

        if not purchase:
            return ValidationResult.failure("Purchase not found")

        state = purchase.get("subscriptionState")
        if state != SUBSCRIPTION_STATE_ACTIVE:
            return ValidationResult.failure(f"Purchase not active. Payment state: {state}")

        line_item = find_line_item(purchase, product_id)
        if line_item is None:
            return ValidationResult.failure("Product not found in purchase")

        now = self.clock()
        expires_at = parse_rfc3339(line_item.get("expiryTime"))
        if expires_at is not None and expires_at <= now:
            return ValidationResult.failure("Subscription has expired")

        purchase_date = parse_rfc3339(purchase.get("startTime"))
        if purchase_date is None:
            purchase_date = expires_at - plan_duration(product_id) if expires_at else now

        logger.info(f"Google Play purchase verified for {product_id}, expires {expires_at}")
        return ValidationResult.success(self._active_record(purchase_token, purchase_date, expires_at))

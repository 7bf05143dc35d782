"""
Receipt verification strategies.

Each platform has one verifier, picked at startup by ``build_verifiers``:
a live verifier when store credentials are configured, otherwise the
deterministic MockVerifier so development never blocks on credentials.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional

from app.core.config import Settings
from app.models.subscription import (
    Platform,
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionTier,
    TIER_HUB_TYPES,
    ValidationResult,
)
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

MONTHLY_DAYS = 30
YEARLY_DAYS = 365

Clock = Callable[[], datetime]


def plan_duration(product_id: str) -> timedelta:
    """Billing period implied by the product id."""
    return timedelta(days=YEARLY_DAYS if "yearly" in product_id else MONTHLY_DAYS)


class ReceiptVerifier(ABC):
    """Validates a store proof of purchase for one platform."""

    platform: Platform

    def __init__(
        self,
        tier: SubscriptionTier = SubscriptionTier.PREMIUM,
        tier_hub_types: Optional[Mapping[SubscriptionTier, List[str]]] = None,
        clock: Clock = utc_now,
    ):
        self.tier = tier
        self.tier_hub_types = tier_hub_types if tier_hub_types is not None else TIER_HUB_TYPES
        self.clock = clock

    @property
    def is_live(self) -> bool:
        return False

    @abstractmethod
    async def validate(self, proof: str, product_id: str) -> ValidationResult:
        """Validate ``proof`` (purchase token or receipt blob) for ``product_id``."""

    def _active_record(
        self,
        proof: str,
        purchase_date: datetime,
        expires_at: Optional[datetime],
    ) -> SubscriptionRecord:
        return SubscriptionRecord(
            tier=self.tier,
            status=SubscriptionStatus.ACTIVE,
            expires_at=expires_at,
            purchase_date=purchase_date,
            platform=self.platform,
            entitled_hub_types=list(self.tier_hub_types.get(self.tier, [])),
            purchase_token=proof,
        )


class MockVerifier(ReceiptVerifier):
    """Accepts every proof. Used when store credentials are not configured."""

    def __init__(self, platform: Platform, **kwargs):
        super().__init__(**kwargs)
        self.platform = platform

    async def validate(self, proof: str, product_id: str) -> ValidationResult:
        now = self.clock()
        logger.info(f"Mock validation for {self.platform.value} product {product_id}")
        return ValidationResult.success(
            self._active_record(proof, purchase_date=now, expires_at=now + plan_duration(product_id))
        )


class LiveVerifier(ReceiptVerifier):
    """
    Base for verifiers that call a store API.

    Subclasses implement ``_validate_live``. Unexpected errors become a
    failed ValidationResult, except under the local emulator where the mock
    result is returned instead.
    """

    def __init__(self, emulator_fallback: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.emulator_fallback = emulator_fallback

    @property
    def is_live(self) -> bool:
        return True

    @abstractmethod
    async def _validate_live(self, proof: str, product_id: str) -> ValidationResult:
        ...

    async def validate(self, proof: str, product_id: str) -> ValidationResult:
        try:
            return await self._validate_live(proof, product_id)
        except Exception as e:
            logger.error(f"Error validating {self.platform.value} purchase for {product_id}: {e}", exc_info=True)

            if self.emulator_fallback:
                logger.warning("Using mock validation due to error in emulator")
                mock = MockVerifier(
                    self.platform, tier=self.tier, tier_hub_types=self.tier_hub_types, clock=self.clock
                )
                return await mock.validate(proof, product_id)

            return ValidationResult.failure(str(e) or "Failed to validate purchase")


def build_verifiers(settings: Settings, clock: Clock = utc_now) -> Dict[Platform, ReceiptVerifier]:
    """Pick live or mock verification per platform from configuration."""
    from app.services.app_store_verifier import AppStoreVerifier
    from app.services.google_play_verifier import GooglePlayVerifier

    verifiers: Dict[Platform, ReceiptVerifier] = {}

    if settings.google_play_configured:
        verifiers[Platform.GOOGLE] = GooglePlayVerifier(
            service_account_email=settings.GOOGLE_PLAY_SERVICE_ACCOUNT_EMAIL,
            private_key=settings.google_play_private_key,
            package_name=settings.GOOGLE_PLAY_PACKAGE_NAME,
            emulator_fallback=settings.is_emulator,
            clock=clock,
        )
    else:
        logger.warning(
            "Google Play service account credentials not configured. "
            "Using mock validation for development."
        )
        verifiers[Platform.GOOGLE] = MockVerifier(Platform.GOOGLE, clock=clock)

    if settings.appstore_configured:
        verifiers[Platform.APPLE] = AppStoreVerifier(
            shared_secret=settings.APPSTORE_SHARED_SECRET,
            production_url=settings.APPSTORE_PRODUCTION_URL,
            sandbox_url=settings.APPSTORE_SANDBOX_URL,
            use_sandbox=settings.APPSTORE_USE_SANDBOX,
            emulator_fallback=settings.is_emulator,
            clock=clock,
        )
    else:
        logger.warning(
            "App Store shared secret not configured. "
            "Using mock validation for development."
        )
        verifiers[Platform.APPLE] = MockVerifier(Platform.APPLE, clock=clock)

    return verifiers

"""
Application Configuration for FamilyHub Subscription Backend
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

# Get the project root directory (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Firebase Configuration
    FIREBASE_PROJECT_ID: str = "familyhub-mvp"
    GOOGLE_APPLICATION_CREDENTIALS: str = "firebase-admin-sdk.json"

    # Firestore profile storage. Profiles live under "users" and, for
    # environments migrated to prefixed collections, "<prefix>users".
    FIRESTORE_COLLECTION_PREFIX: str = ""
    FIRESTORE_EMULATOR_HOST: Optional[str] = None

    # Google Play Developer API
    GOOGLE_PLAY_SERVICE_ACCOUNT_EMAIL: Optional[str] = None
    GOOGLE_PLAY_PRIVATE_KEY: Optional[str] = None
    GOOGLE_PLAY_PACKAGE_NAME: str = "com.example.familyhub_mvp"

    # App Store receipt verification
    APPSTORE_SHARED_SECRET: Optional[str] = None
    APPSTORE_USE_SANDBOX: bool = False
    APPSTORE_PRODUCTION_URL: str = "https://buy.itunes.apple.com/verifyReceipt"
    APPSTORE_SANDBOX_URL: str = "https://sandbox.itunes.apple.com/verifyReceipt"

    # Set when running under the local Firebase emulator suite
    FUNCTIONS_EMULATOR: bool = False

    # Expiration sweep
    SCHEDULER_ENABLED: bool = True
    SWEEP_INTERVAL_HOURS: int = 6
    SWEEP_BATCH_SIZE: int = 500  # Firestore maximum writes per batch

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8393
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "FamilyHub Subscription API"
    DEBUG: bool = True

    # CORS Configuration
    ALLOWED_ORIGINS: str = "*"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from string"""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Environment
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_emulator(self) -> bool:
        """True when running against the local Firebase emulator suite."""
        return self.FUNCTIONS_EMULATOR or bool(self.FIRESTORE_EMULATOR_HOST)

    @property
    def google_play_configured(self) -> bool:
        return bool(self.GOOGLE_PLAY_SERVICE_ACCOUNT_EMAIL and self.GOOGLE_PLAY_PRIVATE_KEY)

    @property
    def google_play_private_key(self) -> Optional[str]:
        """Private key with escaped newlines restored (env vars flatten them)."""
        if not self.GOOGLE_PLAY_PRIVATE_KEY:
            return None
        return self.GOOGLE_PLAY_PRIVATE_KEY.replace("\\n", "\n")

    @property
    def appstore_configured(self) -> bool:
        return bool(self.APPSTORE_SHARED_SECRET)


# Global settings instance
settings = Settings()

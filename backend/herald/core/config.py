"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
import os

# Maximum number of tokens FCM accepts in one multicast call
FCM_MULTICAST_LIMIT = 500


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None  # Defaults to backend/data/logs

    # API
    API_V1_PREFIX: str = "/api/v1"

    # Document store backend: "memory" for local runs, "firestore" for production
    DOCUMENT_STORE_BACKEND: str = "memory"

    # Delivery limits
    PUSH_BATCH_SIZE: int = FCM_MULTICAST_LIMIT
    SCAN_PAGE_SIZE: int = FCM_MULTICAST_LIMIT

    @field_validator('LOG_LEVEL', mode='after')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator('DOCUMENT_STORE_BACKEND', mode='after')
    @classmethod
    def validate_document_store_backend(cls, v: str) -> str:
        """Validate document store backend."""
        valid_backends = ['memory', 'firestore']
        if v not in valid_backends:
            raise ValueError(f"DOCUMENT_STORE_BACKEND must be one of {valid_backends}")
        return v

    @field_validator('PUSH_BATCH_SIZE', 'SCAN_PAGE_SIZE', mode='after')
    @classmethod
    def validate_batch_limits(cls, v: int) -> int:
        """FCM accepts at most 500 tokens per multicast call."""
        if v < 1 or v > FCM_MULTICAST_LIMIT:
            raise ValueError(f"Must be between 1 and {FCM_MULTICAST_LIMIT}")
        return v

    # FCM Configuration
    FCM_PROJECT_ID: Optional[str] = None  # Firebase project ID
    FCM_CREDENTIALS_FILE: Optional[str] = None  # Path to service account JSON

    @property
    def fcm_ready(self) -> bool:
        """Check if FCM is properly configured and ready to use."""
        return (
            self.FCM_PROJECT_ID is not None
            and self.FCM_CREDENTIALS_FILE is not None
            and os.path.exists(self.FCM_CREDENTIALS_FILE)
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()

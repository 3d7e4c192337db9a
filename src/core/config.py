"""
Billing Engine Configuration
Thresholds, filing deadlines and external submission settings.
Source: Design Document 02_authorization_and_billing_consistency.md
Verified: 2026-10-19
"""

from typing import Annotated, Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class BillingSettings(BaseSettings):
    """
    Authorization and billing configuration settings.

    Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
    Verified: 2026-10-19
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="BILLING_",  # All billing settings prefixed with BILLING_
    )

    # =========================================================================
    # Authorization Utilization
    # =========================================================================
    UTILIZATION_EXPIRING_THRESHOLD: float = Field(
        default=0.80,
        ge=0.0,
        le=1.0,
        description="Utilization ratio at which an ACTIVE authorization becomes EXPIRING",
    )
    UTILIZATION_WARNING_THRESHOLD: float = Field(
        default=0.90,
        ge=0.0,
        le=1.0,
        description="Projected utilization ratio that produces a validation warning",
    )

    # =========================================================================
    # Authorization Expiry
    # =========================================================================
    EXPIRY_NOTICE_DAYS: Annotated[list[int], NoDecode] = Field(
        default=[7, 15, 30],
        description="Days-before-end thresholds reported by the expiry sweep",
    )
    EXPIRING_WINDOW_DAYS: int = Field(
        default=30,
        gt=0,
        description="Default look-ahead window for expiring authorization queries",
    )

    # =========================================================================
    # Claim Filing
    # =========================================================================
    DEFAULT_FILING_DEADLINE_DAYS: int = Field(
        default=365,
        gt=0,
        description="Filing deadline used when the payer does not declare one",
    )
    FILING_DEADLINE_WARNING_DAYS: int = Field(
        default=30,
        ge=0,
        description="Warn when fewer days than this remain before the filing deadline",
    )
    BILLABLE_PAGE_SIZE: int = Field(
        default=25,
        gt=0,
        le=500,
        description="Default page size for billable service listings",
    )

    # =========================================================================
    # Clearinghouse Integration
    # =========================================================================
    CLEARINGHOUSE_BASE_URL: str = Field(
        default="https://clearinghouse.local/api/v1",
        description="Clearinghouse API base URL",
    )
    CLEARINGHOUSE_API_KEY: Optional[str] = Field(
        default=None,
        description="Clearinghouse API key",
    )
    CLEARINGHOUSE_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single clearinghouse submission",
    )
    CLEARINGHOUSE_BATCH_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a batched clearinghouse submission",
    )
    CLEARINGHOUSE_RETRY_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Attempts for retryable clearinghouse failures",
    )
    CLEARINGHOUSE_RETRY_DELAY_SECONDS: float = Field(
        default=2.0,
        ge=0,
        description="Initial delay between clearinghouse retries",
    )

    # =========================================================================
    # Payer Direct Integration
    # =========================================================================
    PAYER_API_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for direct and electronic payer submissions",
    )
    PAYER_API_RETRY_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Attempts for retryable payer API failures",
    )

    @field_validator("EXPIRY_NOTICE_DAYS", mode="before")
    @classmethod
    def parse_notice_days(cls, v: Any) -> Any:
        """Allow comma-separated input for notice thresholds."""
        if isinstance(v, str):
            return [int(item.strip()) for item in v.split(",") if item.strip()]
        return v

    @field_validator("EXPIRY_NOTICE_DAYS")
    @classmethod
    def sort_notice_days(cls, v: list[int]) -> list[int]:
        if not v or any(day <= 0 for day in v):
            raise ValueError("Expiry notice days must be positive")
        return sorted(set(v))


# Singleton instance
_billing_settings: Optional[BillingSettings] = None


def get_billing_settings() -> BillingSettings:
    """
    Get cached billing settings instance.

    Returns:
        BillingSettings instance
    """
    global _billing_settings
    if _billing_settings is None:
        _billing_settings = BillingSettings()
    return _billing_settings

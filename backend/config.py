"""
Timesheet Reconciliation - Settings

Every tunable the service reads from the environment (or .env): runtime mode,
WorkflowMax OAuth credentials, job matching weights and alert thresholds.
Matching values are checked when settings are first loaded so a bad weight
fails at startup rather than mid-run.
"""

import re
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)

TIME_OF_DAY_PATTERN = re.compile(r"^\d{1,2}:\d{2}$")


class Settings(BaseSettings):
    """
    Environment-backed settings; field names match the variable names.
    """

    # ==================== RUNTIME ====================
    ENVIRONMENT: str = Field(default="development", description="development, staging or production")
    DEBUG: bool = Field(default=False, description="Force debug output outside development")
    LOG_LEVEL: str = Field(default="INFO")

    # ==================== API ====================
    API_TITLE: str = Field(default="Timesheet Reconciliation API")
    API_VERSION: str = Field(default="1.0.0")

    # ==================== WORKFLOWMAX (WFX) ====================
    WFX_CLIENT_ID: str = Field(default="", description="OAuth client id")
    WFX_CLIENT_SECRET: str = Field(default="", description="OAuth client secret")
    WFX_ACCOUNT_ID: str = Field(default="", description="WorkflowMax account (tenant) id")
    WFX_BASE_URL: str = Field(default="https://api.xero.com/workflowmax/3.0")
    WFX_AUTH_URL: str = Field(default="https://login.xero.com/identity/connect/authorize")
    WFX_TOKEN_URL: str = Field(default="https://identity.xero.com/connect/token")
    WFX_CALLBACK_URL: str = Field(default="http://localhost:3001/oauth/callback")
    WFX_SCOPES: str = Field(default="openid profile email workflowmax offline_access")
    WFX_TOKEN_PATH: str = Field(
        default="data/wfx_tokens.json",
        description="Where OAuth tokens are persisted between runs"
    )
    WFX_REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0)
    WFX_MAX_RETRIES: int = Field(default=3)
    WFX_CACHE_MINUTES: int = Field(
        default=10,
        description="How long GET responses are served from the client cache"
    )

    # ==================== JOB MATCHING ====================
    MATCH_LOCATION_WEIGHT: float = Field(default=0.5)
    MATCH_TIME_WEIGHT: float = Field(default=0.3)
    MATCH_DURATION_WEIGHT: float = Field(default=0.1)
    MATCH_JOB_TYPE_WEIGHT: float = Field(default=0.1)
    MIN_MATCH_CONFIDENCE: float = Field(
        default=0.7,
        description="Confidence a confident-pass match must exceed"
    )
    FUZZY_MATCH_THRESHOLD: float = Field(
        default=0.4,
        description="Confidence a fuzzy-pass match must exceed"
    )
    MAX_TIME_OFFSET_MINUTES: float = Field(default=30)
    MAX_LOCATION_DISTANCE_KM: float = Field(default=2.0)
    DEFAULT_ENTRY_START_TIME: str = Field(
        default="09:00",
        description="Start time assumed for timesheet entries that carry none"
    )

    # ==================== WORKING HOURS ====================
    BREAK_AFTER_HOURS: float = Field(default=4)
    BREAK_DURATION_MINUTES: int = Field(default=30)

    # ==================== ALERTS ====================
    TIMESHEET_DISCREPANCY_HOURS: float = Field(default=0.5)
    UNACCOUNTED_TRAVEL_MINUTES: float = Field(default=30)
    DAILY_DISTANCE_THRESHOLD_KM: float = Field(default=200)
    MISSING_TIMESHEET_ALERT: bool = Field(default=True)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    # ==================== DERIVED ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Debug output is always on in development."""
        return self.DEBUG or self.is_development

    @property
    def wfx_configured(self) -> bool:
        return bool(self.WFX_CLIENT_ID and self.WFX_CLIENT_SECRET)

    def validate_matching_config(self) -> List[str]:
        """
        Check matching weights, thresholds and the default start time.
        Returns one message per problem; empty when valid.
        """
        errors = []

        weights = {
            "MATCH_LOCATION_WEIGHT": self.MATCH_LOCATION_WEIGHT,
            "MATCH_TIME_WEIGHT": self.MATCH_TIME_WEIGHT,
            "MATCH_DURATION_WEIGHT": self.MATCH_DURATION_WEIGHT,
            "MATCH_JOB_TYPE_WEIGHT": self.MATCH_JOB_TYPE_WEIGHT,
        }
        for name, value in weights.items():
            if not 0 <= value <= 1:
                errors.append(f"{name} must be between 0 and 1")

        if sum(weights.values()) > 1 + 1e-9:
            errors.append("Matching weights must sum to at most 1")

        for name, value in (
            ("MIN_MATCH_CONFIDENCE", self.MIN_MATCH_CONFIDENCE),
            ("FUZZY_MATCH_THRESHOLD", self.FUZZY_MATCH_THRESHOLD),
        ):
            if not 0 <= value <= 1:
                errors.append(f"{name} must be between 0 and 1")

        if self.FUZZY_MATCH_THRESHOLD > self.MIN_MATCH_CONFIDENCE:
            errors.append("FUZZY_MATCH_THRESHOLD cannot exceed MIN_MATCH_CONFIDENCE")

        if self.MAX_TIME_OFFSET_MINUTES <= 0:
            errors.append("MAX_TIME_OFFSET_MINUTES must be positive")
        if self.MAX_LOCATION_DISTANCE_KM <= 0:
            errors.append("MAX_LOCATION_DISTANCE_KM must be positive")
        if self.TIMESHEET_DISCREPANCY_HOURS < 0:
            errors.append("TIMESHEET_DISCREPANCY_HOURS cannot be negative")

        if not TIME_OF_DAY_PATTERN.match(self.DEFAULT_ENTRY_START_TIME):
            errors.append("DEFAULT_ENTRY_START_TIME must be formatted HH:MM")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """Load settings once; invalid matching values raise ValueError."""
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"WFX configured: {settings.wfx_configured}")

    errors = settings.validate_matching_config()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ValueError(f"Matching configuration invalid: {', '.join(errors)}")

    return settings

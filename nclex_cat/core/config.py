"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Literal, Self

from nclex_cat.core.cat.content_balancing import (
    DEFAULT_TEST_PLAN,
    parse_test_plan,
    plan_to_dict,
    validate_test_plan,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "NCLEX CAT API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (read by models.base at import time; kept here for visibility)
    DATABASE_URL: str = Field(
        default="sqlite:///./nclex_cat.db",
        description="SQLAlchemy database URL for the item bank and session store",
    )

    # CAT exam defaults, overridable per exam
    CAT_MIN_ITEMS: int = Field(default=60, ge=1, description="Minimum exam length")
    CAT_MAX_ITEMS: int = Field(default=145, ge=1, description="Maximum exam length")
    CAT_SE_THRESHOLD: float = Field(
        default=0.3,
        gt=0.0,
        description="SE at or below which the precision stopping rule fires",
    )
    CAT_CUT_SCORE: float = Field(
        default=0.0,
        ge=-4.0,
        le=4.0,
        description="Passing standard on the theta scale",
    )
    CAT_EXPOSURE_TOP_K: int = Field(
        default=5,
        ge=1,
        description="Randomesque exposure control: draw from the top-K items",
    )
    # Keys must match NCLEXCategory values in nclex_cat/models/models.py
    CAT_TEST_PLAN: Dict[str, Dict[str, float]] = Field(
        default_factory=lambda: plan_to_dict(DEFAULT_TEST_PLAN),
        description="Percent-of-exam range per category: {category: {min, max}}",
    )
    CAT_EXPOSURE_ALERT_THRESHOLD: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Share of sessions above which an item is logged as overexposed",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_exam_length(self) -> Self:
        """CAT_MAX_ITEMS must not be below CAT_MIN_ITEMS."""
        if self.CAT_MAX_ITEMS < self.CAT_MIN_ITEMS:
            raise ValueError(
                f"CAT_MAX_ITEMS ({self.CAT_MAX_ITEMS}) must be >= "
                f"CAT_MIN_ITEMS ({self.CAT_MIN_ITEMS})"
            )
        return self

    @model_validator(mode="after")
    def validate_cat_test_plan(self) -> Self:
        """Reject test plans that cannot be satisfied at the configured lengths."""
        plan = parse_test_plan(self.CAT_TEST_PLAN)
        validate_test_plan(plan, self.CAT_MIN_ITEMS, self.CAT_MAX_ITEMS)
        return self


settings = Settings()

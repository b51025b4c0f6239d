from functools import lru_cache
from typing import List

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    allowed_origins: str = Field(
        default="",
        alias="ALLOWED_ORIGINS",
        description="Comma-separated CORS origins for the resolve API",
    )

    # data.gov.in "Current Daily Price of Various Commodities from Various Markets (Mandi)"
    data_gov_api_key: str | None = Field(default=None, alias="DATA_GOV_API_KEY")
    data_gov_api_url: str = Field(
        default="https://api.data.gov.in/resource/35985678-0d79-46b4-9ed6-6f13308a1d24",
        alias="DATA_GOV_API_URL",
    )
    remote_timeout_seconds: float = Field(
        default=5.0,
        alias="REMOTE_TIMEOUT_SECONDS",
        description="Ceiling for a single remote price lookup during resolution",
    )
    remote_page_size: int = Field(default=500, alias="REMOTE_PAGE_SIZE")

    record_store_path: str = Field(
        default="mandi_resolver/data/prices.db",
        alias="RECORD_STORE_PATH",
        description="SQLite file holding price rows and the markets/commodities master",
    )

    # Resolution tuning
    fuzzy_similarity_floor: float = Field(default=0.6, alias="FUZZY_SIMILARITY_FLOOR")
    auto_correct_threshold: float = Field(default=0.92, alias="AUTO_CORRECT_THRESHOLD")
    max_candidates: int = Field(default=5, alias="MAX_CANDIDATES")
    combined_spelling_cap: int = Field(default=3, alias="COMBINED_SPELLING_CAP")
    combined_geographic_cap: int = Field(default=3, alias="COMBINED_GEOGRAPHIC_CAP")
    geographic_candidate_limit: int = Field(default=5, alias="GEOGRAPHIC_CANDIDATE_LIMIT")
    max_lookback_days: int = Field(default=30, alias="MAX_LOOKBACK_DAYS", ge=1, le=90)
    date_range_days: int = Field(default=7, alias="DATE_RANGE_DAYS", ge=1, le=31)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,  # Treat empty strings as not set
    )

    @field_validator("fuzzy_similarity_floor", "auto_correct_threshold")
    @classmethod
    def check_unit_interval(cls, v: float) -> float:
        """Similarity thresholds are scores in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("similarity thresholds must be between 0 and 1")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return str(v).upper() if v else "INFO"

    @model_validator(mode="after")
    def validate_thresholds(self):
        """The fuzzy floor must sit at or below the auto-correct bound."""
        if self.fuzzy_similarity_floor > self.auto_correct_threshold:
            raise ValueError(
                "FUZZY_SIMILARITY_FLOOR must not exceed AUTO_CORRECT_THRESHOLD "
                f"({self.fuzzy_similarity_floor} > {self.auto_correct_threshold})"
            )
        return self

    @property
    def allowed_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def remote_enabled(self) -> bool:
        """Remote lookups need an API key; without one tier 1 is store-only."""
        return bool(self.data_gov_api_key)


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process.

    Raises:
        ConfigurationError: an environment value fails validation
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.errors()[0]['msg']}",
            details={"errors": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
        ) from e

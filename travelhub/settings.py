import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Amadeus API Configuration
    amadeus_base_url: str = Field(
        default="https://test.api.amadeus.com", alias="AMADEUS_API_BASE_URL"
    )
    amadeus_api_key: str = Field(default="", alias="AMADEUS_API_KEY")
    amadeus_api_secret: str = Field(default="", alias="AMADEUS_API_SECRET")
    amadeus_timeout: float = Field(default=30.0, alias="AMADEUS_TIMEOUT")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./travelhub.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Retry Configuration
    retry_max_retries: int = Field(default=3, ge=0, alias="RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(default=1.0, ge=0, alias="RETRY_BASE_DELAY")
    retry_jitter: float = Field(default=0.5, ge=0, alias="RETRY_JITTER")

    # Flight Cache (pricing is volatile)
    flight_cache_ttl_minutes: int = Field(default=5, gt=0, alias="FLIGHT_CACHE_TTL_MINUTES")
    flight_cache_max_size: int = Field(default=100, gt=0, alias="FLIGHT_CACHE_MAX_SIZE")
    flight_markup_percent: float = Field(default=2.5, ge=0, alias="FLIGHT_MARKUP_PERCENT")

    # Location Cache
    location_cache_ttl_minutes: int = Field(
        default=30, gt=0, alias="LOCATION_CACHE_TTL_MINUTES"
    )
    location_cache_max_size: int = Field(
        default=1000, gt=0, alias="LOCATION_CACHE_MAX_SIZE"
    )
    location_persist_ttl_hours: int = Field(
        default=24, gt=0, alias="LOCATION_PERSIST_TTL_HOURS"
    )

    # Activity Cache
    activity_cache_ttl_minutes: int = Field(
        default=60, gt=0, alias="ACTIVITY_CACHE_TTL_MINUTES"
    )
    activity_cache_max_size: int = Field(default=400, gt=0, alias="ACTIVITY_CACHE_MAX_SIZE")
    activity_persist_ttl_hours: int = Field(
        default=12, gt=0, alias="ACTIVITY_PERSIST_TTL_HOURS"
    )
    activity_currency: str = Field(default="INR", alias="ACTIVITY_CURRENCY")
    activity_fx_rate: float = Field(default=85.0, gt=0, alias="ACTIVITY_FX_RATE")

    # Hotel Cache (offers use shorter per-entry TTLs)
    hotel_cache_ttl_minutes: int = Field(default=20, gt=0, alias="HOTEL_CACHE_TTL_MINUTES")
    hotel_cache_max_size: int = Field(default=500, gt=0, alias="HOTEL_CACHE_MAX_SIZE")

    # Cache Warming and Cleanup
    cache_warm_enabled: bool = Field(default=True, alias="CACHE_WARM_ENABLED")
    cache_warm_hour: int = Field(default=3, ge=0, le=23, alias="CACHE_WARM_HOUR")
    cache_warm_dev_delay_minutes: int = Field(
        default=10, ge=0, alias="CACHE_WARM_DEV_DELAY_MINUTES"
    )
    cache_warm_batch_size: int = Field(default=2, gt=0, alias="CACHE_WARM_BATCH_SIZE")
    cache_warm_batch_delay: float = Field(default=30.0, ge=0, alias="CACHE_WARM_BATCH_DELAY")
    cache_warm_rate_limit_delay: float = Field(
        default=60.0, ge=0, alias="CACHE_WARM_RATE_LIMIT_DELAY"
    )
    cache_cleanup_interval_minutes: int = Field(
        default=15, gt=0, alias="CACHE_CLEANUP_INTERVAL_MINUTES"
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def load_settings() -> Settings:
    """Read settings from the environment, after loading a .env file if present."""
    load_dotenv()
    return Settings.model_validate(dict(os.environ))

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"

    # Database
    database_url: str

    # Redis (alert debounce cache)
    redis_url: str | None = None

    # Webhooks (one target per event kind; unset means log-only)
    webhook_url_shortage: str | None = None
    webhook_url_future_shortage: str | None = None
    webhook_url_expired: str | None = None
    webhook_timeout_seconds: float = 5.0

    # SMS (provider "log" only logs; "http" posts to an SMS gateway)
    sms_enabled: bool = False
    sms_provider: str = "log"
    sms_gateway_url: str | None = None
    sms_api_key: str | None = None
    sms_sender_id: str = "HEMOLNK"
    sms_timeout_seconds: float = 5.0

    # Geocoder (OpenStreetMap Nominatim)
    geocoder_base_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "HemolinkBackend/1.0"
    geocoder_timeout_seconds: float = 5.0
    geocoder_default_country: str = "India"

    # Current shortage thresholds
    shortage_threshold_default_blood: int = 3
    shortage_threshold_blood_overrides: dict[str, int] = Field(default_factory=dict)
    shortage_threshold_organ: int = 1

    # Projected shortage
    future_shortage_days: float = 3.0
    future_shortage_lookback_days: int = 7

    # Alert debounce; 0 disables it
    alert_cooldown_seconds: int = 300

    # Matching
    matching_initial_radius_km: float = 10.0
    matching_recheck_radius_km: float = 25.0
    matching_rest_period_days: int = 90
    matching_ping_cooldown_days: int = 14
    proposal_lifetime_hours: int = 24
    appointment_default_hour: int = 10
    confirm_url_template: str = "/api/v1/proposals/confirm/{token}"

    # Scheduler
    scheduler_enabled: bool = True
    recheck_interval_seconds: int = 30 * 60
    expiry_sweep_interval_seconds: int = 10 * 60
    shortage_sweep_interval_seconds: int = 30
    future_shortage_sweep_interval_seconds: int = 30

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("shortage_threshold_blood_overrides", mode="before")
    @classmethod
    def empty_overrides_to_dict(cls, v):
        if v in (None, ""):
            return {}
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()

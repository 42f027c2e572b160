from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Core API Settings
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8000, alias="API_PORT")
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    app_env: str = Field("dev", alias="APP_ENV")

    # Database: explicit DSN wins, otherwise Supabase Postgres
    database_url: str | None = Field(None, alias="DATABASE_URL")
    supabase_project_ref: str | None = Field(None, alias="SUPABASE_PROJECT_REF", description="Supabase project reference ID")
    supabase_db_password: str | None = Field(None, alias="SUPABASE_DB_PASSWORD", description="Supabase database password")
    supabase_db_user: str = Field("postgres", alias="SUPABASE_DB_USER")
    supabase_db_name: str = Field("postgres", alias="SUPABASE_DB_NAME")

    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")

    # Redirect endpoint rate limiting (per process unless backend=redis)
    rate_limit_backend: str = Field("memory", alias="RATE_LIMIT_BACKEND")  # memory|redis
    redirect_ip_limit: int = Field(100, alias="REDIRECT_IP_LIMIT")
    redirect_link_limit: int = Field(50, alias="REDIRECT_LINK_LIMIT")
    rate_limit_window_seconds: int = Field(60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_entries: int = Field(10000, alias="RATE_LIMIT_MAX_ENTRIES")

    # Redirect endpoint behaviour
    link_error_path: str = Field("/link-error.html", alias="LINK_ERROR_PATH")
    canary_header: str = Field("x-linkpeek-redirect", alias="CANARY_HEADER")
    redirect_chain_timeout_seconds: float = Field(3.0, alias="REDIRECT_CHAIN_TIMEOUT_SECONDS")

    # Incident detection
    incident_window_minutes: int = Field(5, alias="INCIDENT_WINDOW_MINUTES")
    incident_min_sample_size: int = Field(50, alias="INCIDENT_MIN_SAMPLE_SIZE")
    incident_dedup_minutes: int = Field(30, alias="INCIDENT_DEDUP_MINUTES")
    incident_resolve_after_minutes: int = Field(60, alias="INCIDENT_RESOLVE_AFTER_MINUTES")
    incident_threshold_low: float = Field(5.0, alias="INCIDENT_THRESHOLD_LOW")
    incident_threshold_medium: float = Field(10.0, alias="INCIDENT_THRESHOLD_MEDIUM")
    incident_threshold_high: float = Field(20.0, alias="INCIDENT_THRESHOLD_HIGH")
    incident_threshold_critical: float = Field(40.0, alias="INCIDENT_THRESHOLD_CRITICAL")

    # Link health checks
    health_lookback_days: int = Field(7, alias="HEALTH_LOOKBACK_DAYS")
    health_inspect_chain: bool = Field(False, alias="HEALTH_INSPECT_CHAIN")  # outbound HEAD per link

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"  # Allow extra environment variables


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings():
    """Clear cached settings (useful in tests when env vars change)."""
    try:
        get_settings.cache_clear()  # type: ignore[attr-defined]
    except Exception:
        pass


def severity_thresholds(settings: Settings | None = None) -> dict[str, float]:
    s = settings or get_settings()
    return {
        "low": s.incident_threshold_low,
        "medium": s.incident_threshold_medium,
        "high": s.incident_threshold_high,
        "critical": s.incident_threshold_critical,
    }

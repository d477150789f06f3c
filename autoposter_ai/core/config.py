from pydantic_settings import BaseSettings, SettingsConfigDict

from autoposter_ai.gateway.types import (
    DEFAULT_RATE_LIMITS,
    CircuitBreakerConfig,
    ModelOverrides,
    Provider,
    ProviderConfig,
    RateLimitConfig,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # AI provider selection
    ai_provider: str = "gemini"  # gemini | kieai

    # Provider credentials
    gemini_api_key: str = ""
    kieai_api_key: str = ""

    # Per-capability model overrides (empty = provider default)
    gemini_text_model: str = ""
    gemini_image_model: str = ""
    gemini_video_model: str = ""
    kieai_text_model: str = ""
    kieai_image_model: str = ""
    kieai_video_model: str = ""

    # Async task polling (None = provider default)
    ai_polling_interval_seconds: float | None = None
    ai_max_polling_attempts: int = 60
    ai_poll_deadline_seconds: float | None = None

    # Hard timeout for a single request/response call
    ai_request_timeout_seconds: float = 60.0

    # Rate limiter overrides (None = provider default)
    ai_rate_limit_max_requests: int | None = None
    ai_rate_limit_window_seconds: float | None = None
    ai_rate_limit_wait_for_slot: bool | None = None
    ai_rate_limit_max_wait_seconds: float | None = None

    # Circuit breaker
    ai_circuit_threshold: int = 5
    ai_circuit_reset_timeout_seconds: float = 60.0

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def get_current_ai_provider(s: Settings | None = None) -> Provider:
    """The active provider. Raises ValueError for an unknown AI_PROVIDER."""
    s = s or settings
    try:
        return Provider(s.ai_provider.strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown AI_PROVIDER {s.ai_provider!r}. Supported: {', '.join(p.value for p in Provider)}"
        ) from None


def _rate_limit_config(s: Settings, provider: Provider) -> RateLimitConfig | None:
    overrides = {
        "max_requests": s.ai_rate_limit_max_requests,
        "window_seconds": s.ai_rate_limit_window_seconds,
        "wait_for_slot": s.ai_rate_limit_wait_for_slot,
        "max_wait_seconds": s.ai_rate_limit_max_wait_seconds,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if not overrides:
        return None
    base = DEFAULT_RATE_LIMITS[provider]
    return RateLimitConfig(
        max_requests=overrides.get("max_requests", base.max_requests),
        window_seconds=overrides.get("window_seconds", base.window_seconds),
        wait_for_slot=overrides.get("wait_for_slot", base.wait_for_slot),
        max_wait_seconds=overrides.get("max_wait_seconds", base.max_wait_seconds),
    )


def get_ai_config(s: Settings | None = None) -> ProviderConfig:
    """Build the immutable adapter config for the active provider."""
    s = s or settings
    provider = get_current_ai_provider(s)
    prefix = provider.value

    return ProviderConfig(
        provider=provider,
        api_key=getattr(s, f"{prefix}_api_key"),
        models=ModelOverrides(
            text=getattr(s, f"{prefix}_text_model") or None,
            image=getattr(s, f"{prefix}_image_model") or None,
            video=getattr(s, f"{prefix}_video_model") or None,
        ),
        polling_interval_seconds=s.ai_polling_interval_seconds,
        max_polling_attempts=s.ai_max_polling_attempts,
        rate_limit=_rate_limit_config(s, provider),
        circuit_breaker=CircuitBreakerConfig(
            threshold=s.ai_circuit_threshold,
            reset_timeout_seconds=s.ai_circuit_reset_timeout_seconds,
        ),
        request_timeout_seconds=s.ai_request_timeout_seconds,
        poll_deadline_seconds=s.ai_poll_deadline_seconds,
    )


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    try:
        provider = get_current_ai_provider()
    except ValueError as e:
        errors.append(str(e))
    else:
        if not getattr(settings, f"{provider.value}_api_key"):
            errors.append(f"{provider.value.upper()}_API_KEY must be set when AI_PROVIDER={provider.value}")

    if settings.ai_request_timeout_seconds <= 0:
        errors.append("AI_REQUEST_TIMEOUT_SECONDS must be positive")

    if settings.app_env == "production" and settings.app_debug:
        errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))

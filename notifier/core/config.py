"""Service configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide configuration options."""

    config_path: str = "notifier.yaml"
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: int = 15
    secret_backend: str = "env"
    secret_env_prefix: str = "NOTIFIER_SECRET_"
    secret_dir: str = "/var/run/secrets/notifier"
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_exporter: str = "console"
    otel_otlp_endpoint: str | None = None

    model_config = SettingsConfigDict(env_prefix="notifier_", env_file=".env", extra="ignore")


settings = Settings()

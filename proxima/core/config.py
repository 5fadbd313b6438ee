from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Dashboard configuration read from ``PROXIMA_*`` environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="PROXIMA_", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="ProximaGo")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s %(name)s %(message)s")

    # Backend gateway configuration
    gateway_url: str | None = Field(default=None)
    gateway_key: str | None = Field(default=None)
    request_timeout: float = Field(default=10.0)
    notification_limit: int = Field(default=20)

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="proxima-dashboard")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)

    @property
    def gateway_configured(self) -> bool:
        return bool(self.gateway_url and self.gateway_url.strip() and self.gateway_key and self.gateway_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the dashboard settings."""

    return Settings()

"""Central environment-driven settings for the payment proxy.

The process loads this once at startup and hands the object to the service.
Gateway credentials are optional here so the app can boot and report a config
error per request instead of crashing (see `.env.example`).
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProxySettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-proxy"
    log_level: str = "INFO"
    gateway_provider: str = "expfypay"
    gateway_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_BASE_URL", "URL_API_EXPFY"),
    )
    gateway_public_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_PUBLIC_KEY", "EXPFY_PK"),
    )
    gateway_secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_SECRET_KEY", "EXPFY_SK"),
    )
    gateway_payments_endpoint: str | None = None
    gateway_timeout_seconds: float = 15.0
    gateway_max_attempts: int = 4
    gateway_backoff_base_seconds: float = 0.4
    order_description: str = "Pedido - Patinete Elétrico"
    cors_allow_origin: str = "*"
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


settings = ProxySettings()

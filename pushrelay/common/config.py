"""Central environment-driven settings shared by both services.

Each service process loads this once at startup. Deployment-specific behavior
(database, gateway endpoint, webhook payload shape) is controlled by
environment variables or a local `.env` file.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pushrelay"
    log_level: str = "INFO"
    database_url: str
    database_service_key: str | None = None
    port: int | None = None
    push_gateway_url: str = EXPO_PUSH_URL
    push_gateway_timeout_seconds: float = 5.0
    otel_exporter_otlp_endpoint: str = ""
    webhook_payload_format: Literal["contact", "conversation"] = "contact"
    webhook_end_user_sender_types: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def end_user_sender_types(self) -> set[str]:
        """Sender types treated as end users for the configured payload shape."""

        raw = self.webhook_end_user_sender_types
        if not raw:
            raw = "user,contact" if self.webhook_payload_format == "contact" else "contact"
        return {part.strip().lower() for part in raw.split(",") if part.strip()}


settings = CommonSettings()

"""Startup-time logging of the resolved configuration."""

from sqlalchemy.engine import make_url

from pushrelay.common.config import CommonSettings
from pushrelay.common.logging import logger


def redacted_settings(settings: CommonSettings) -> dict:
    """Resolved settings with the database password and service key masked."""

    config = settings.model_dump()
    config["database_url"] = make_url(settings.database_url).render_as_string(hide_password=True)
    if settings.database_service_key:
        config["database_service_key"] = "<redacted>"
    config["end_user_sender_types"] = sorted(settings.end_user_sender_types())
    return config


def log_startup_config(service_name: str, settings: CommonSettings, constants: dict | None = None) -> dict:
    """Log what this process will actually run with; returns the logged mapping."""

    config = {"service": service_name, **redacted_settings(settings)}
    if constants:
        config["constants"] = constants
    logger.info("startup_config=%s", config)
    return config

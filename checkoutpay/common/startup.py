"""Startup diagnostics: the effective gateway configuration, secrets masked."""

from checkoutpay.common.config import ProxySettings
from checkoutpay.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "token")


def _safe_value(field: str, value) -> str:
    """Render one setting for the log; credentials only report whether they are set."""

    if value in (None, ""):
        return "<unset>"
    if any(marker in field for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(config: ProxySettings, fields: list[str]) -> None:
    """Log selected settings after env, legacy aliases and defaults are resolved."""

    values = config.model_dump(include=set(fields))
    snapshot = {"service": config.service_name}
    for field in fields:
        snapshot[field] = _safe_value(field, values.get(field))
    logger.info("startup_config=%s", snapshot)

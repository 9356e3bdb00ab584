"""Service layer helpers (settings, identity context, HTTP transport)."""

from .context import LoggerContext, generate_unique_id, get_logger_context
from .settings import SecretVault, Settings, SettingsStore
from .transport import Transport, parse_with_date, url_params

__all__ = [
    "LoggerContext",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "Transport",
    "generate_unique_id",
    "get_logger_context",
    "parse_with_date",
    "url_params",
]

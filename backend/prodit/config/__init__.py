"""Configuration module for backend services."""

from prodit.config.settings import (
    DEFAULT_XERO_SCOPES,
    Settings,
    get_settings,
    normalize_database_url,
)

__all__ = [
    "DEFAULT_XERO_SCOPES",
    "Settings",
    "get_settings",
    "normalize_database_url",
]

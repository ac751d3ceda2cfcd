"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_airtable_table: Cached pyairtable Table for the apps table
    check_connection: Health check function
"""

from config.settings import settings, get_settings, Settings
from config.airtable import (
    get_airtable_table,
    check_connection,
    reset_connection,
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Airtable
    "get_airtable_table",
    "check_connection",
    "reset_connection",
]

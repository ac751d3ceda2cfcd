"""
Airtable connection management.

Provides a cached pyairtable Table for the apps table.
"""

from pyairtable import Api, Table
from functools import lru_cache
import structlog

from config.settings import settings
from exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


@lru_cache()
def get_airtable_table() -> Table:
    """
    Get cached Airtable table instance.

    Uses lru_cache to ensure only one client is created.
    Call get_airtable_table.cache_clear() to reconnect.

    Returns:
        Table: pyairtable table bound to the configured base

    Raises:
        ConfigurationError: If the API key or base ID is missing
    """
    missing = [
        name for name, value in (
            ("AIRTABLE_API_KEY", settings.airtable_api_key),
            ("AIRTABLE_BASE_ID", settings.airtable_base_id),
        )
        if not value
    ]
    if missing:
        logger.error("airtable_not_configured", missing=missing)
        raise ConfigurationError(
            "Airtable API key or Base ID is missing",
            missing=missing
        )

    logger.info(
        "connecting_to_airtable",
        base_id=settings.airtable_base_id,
        table=settings.airtable_table_name
    )

    api = Api(settings.airtable_api_key)
    return api.table(settings.airtable_base_id, settings.airtable_table_name)


def check_connection() -> dict:
    """
    Check Airtable connection health.

    Returns:
        dict: Connection status with details
    """
    if not settings.airtable_configured:
        return {
            "status": "unconfigured",
            "error": "Airtable API key or Base ID is missing"
        }

    try:
        table = get_airtable_table()
        table.first()

        return {
            "status": "healthy",
            "table": settings.airtable_table_name
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached Airtable table.

    Call this after config changes.
    """
    get_airtable_table.cache_clear()
    logger.info("airtable_connection_reset")

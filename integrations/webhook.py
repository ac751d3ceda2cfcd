"""
Notification webhook integration.

Posts the finalized import payload as JSON to the configured URL.
"""

from typing import Any, Optional
import requests
import structlog

from config import settings
from exceptions import SubmissionError

logger = structlog.get_logger(__name__)


def get_webhook_config() -> tuple[Optional[str], float]:
    """
    Get webhook configuration from settings.

    Returns:
        tuple: (url, timeout_seconds)
    """
    if not settings.webhook_configured:
        logger.warning("webhook_not_configured")

    return settings.webhook_url, settings.webhook_timeout_seconds


def send_import_notification(payload: dict[str, Any]) -> bool:
    """
    Send the import payload to the webhook.

    Args:
        payload: JSON-serializable body (camelCase keys)

    Returns:
        True if the webhook accepted the payload

    Raises:
        SubmissionError: Webhook not configured, unreachable, or returned an error
    """
    url, timeout = get_webhook_config()

    if not url:
        raise SubmissionError("Notification webhook URL is not configured")

    summary = payload.get("summary", {})

    try:
        logger.info(
            "sending_import_notification",
            total_processed=summary.get("totalProcessed"),
            new=summary.get("new"),
            updated=summary.get("updated"),
            unchanged=summary.get("unchanged")
        )

        response = requests.post(url, json=payload, timeout=timeout)
        response.raise_for_status()

        logger.info("import_notification_sent", status_code=response.status_code)
        return True

    except requests.exceptions.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        body = e.response.text[:500] if e.response is not None else ""
        logger.error("webhook_rejected_payload", status_code=status_code, body=body)
        raise SubmissionError(
            f"Webhook returned HTTP {status_code}",
            details={"status_code": status_code, "body": body}
        ) from e

    except requests.exceptions.RequestException as e:
        logger.error("webhook_request_failed", error=str(e))
        raise SubmissionError(
            f"Failed to send import notification: {str(e)}"
        ) from e

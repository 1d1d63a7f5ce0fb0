"""
Factory for getting the quota warning sender.
"""

from common.core.config import Settings
from common.core.constants import NotificationProvider
from common.core.otel_axiom_exporter import get_logger
from .http_sender import HttpQuotaWarningSender
from .interface import QuotaWarningSenderInterface
from .log_sender import LogQuotaWarningSender

logger = get_logger(__name__)


def create_quota_warning_sender(settings: Settings) -> QuotaWarningSenderInterface:
    """
    Build the sender selected by settings.notification_provider.

    Returns:
        QuotaWarningSenderInterface: Configured sender
    """
    if settings.notification_provider == NotificationProvider.HTTP:
        logger.info(f"Initialized HTTP quota warning sender - {settings.notification_endpoint}")
        return HttpQuotaWarningSender(
            endpoint=settings.notification_endpoint,
            api_token=settings.notification_api_token,
            timeout=settings.notification_timeout_seconds,
        )

    logger.info("Initialized log quota warning sender")
    return LogQuotaWarningSender()

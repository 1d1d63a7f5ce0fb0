"""Notification providers - quota warning delivery."""

from packages.quota.providers.notification.interface import QuotaWarningSenderInterface
from packages.quota.providers.notification.http_sender import HttpQuotaWarningSender
from packages.quota.providers.notification.log_sender import LogQuotaWarningSender
from packages.quota.providers.notification.factory import create_quota_warning_sender

__all__ = [
    "QuotaWarningSenderInterface",
    "HttpQuotaWarningSender",
    "LogQuotaWarningSender",
    "create_quota_warning_sender",
]

"""Database models for quotas."""

from packages.quota.models.database.quota import (
    DailyUsageEntity,
    QuotaProfileEntity,
    QuotaNotificationEntity,
    ToolUsageEventEntity,
)

__all__ = [
    "DailyUsageEntity",
    "QuotaProfileEntity",
    "QuotaNotificationEntity",
    "ToolUsageEventEntity",
]

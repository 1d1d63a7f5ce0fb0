"""
Composition root for the quota package.

Builds the store, engine, notifier, listener and rate limiter once per
process. Nothing here is global: callers keep the returned components and
close them on shutdown.
"""

from dataclasses import dataclass
from typing import Optional

from common.core.config import Settings
from common.core.otel_axiom_exporter import get_logger
from packages.quota.periods import Clock, utc_now
from packages.quota.plans import PlanCatalog
from packages.quota.providers.notification.factory import create_quota_warning_sender
from packages.quota.providers.notification.interface import QuotaWarningSenderInterface
from packages.quota.providers.usage_store.factory import create_usage_store
from packages.quota.providers.usage_store.interface import UsageStoreInterface
from packages.quota.services.plan_change_listener import PlanChangeListener
from packages.quota.services.quota_engine import QuotaEngine
from packages.quota.services.rate_limiter import PlanRateLimiter
from packages.quota.services.threshold_notifier import ThresholdNotifier

logger = get_logger(__name__)


@dataclass
class QuotaComponents:
    """Wired quota services sharing one store."""

    store: UsageStoreInterface
    sender: QuotaWarningSenderInterface
    catalog: PlanCatalog
    engine: QuotaEngine
    notifier: ThresholdNotifier
    listener: PlanChangeListener
    rate_limiter: PlanRateLimiter

    async def close(self) -> None:
        """Release store and sender connections."""
        await self.sender.close()
        await self.store.close()


def build_quota_components(
    settings: Settings,
    store: Optional[UsageStoreInterface] = None,
    sender: Optional[QuotaWarningSenderInterface] = None,
    clock: Clock = utc_now,
) -> QuotaComponents:
    """
    Build the quota services from settings.

    Args:
        settings: Application settings
        store: Store to use instead of the configured backend
        sender: Warning sender to use instead of the configured provider
        clock: Time source shared by the engine and store

    Returns:
        QuotaComponents ready for use
    """
    store = store or create_usage_store(settings, clock=clock)
    sender = sender or create_quota_warning_sender(settings)
    catalog = PlanCatalog()
    engine = QuotaEngine(store, catalog, clock=clock)
    notifier = ThresholdNotifier(
        engine, store, sender, thresholds=settings.quota_warning_thresholds
    )
    listener = PlanChangeListener(engine)
    rate_limiter = PlanRateLimiter(settings.rate_limit_storage_uri)

    logger.info(
        f"Quota components ready - store={type(store).__name__}, sender={type(sender).__name__}",
        extra={"thresholds": settings.quota_warning_thresholds},
    )
    return QuotaComponents(
        store=store,
        sender=sender,
        catalog=catalog,
        engine=engine,
        notifier=notifier,
        listener=listener,
        rate_limiter=rate_limiter,
    )

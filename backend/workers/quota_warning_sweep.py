"""
Cron entry point for the daily quota warning sweep.

Checks every user with usage on the given UTC day and sends any warnings
that were missed after individual increments (for example while the email
service was down).
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.quota.exceptions import StoreError
from packages.quota.factory import QuotaComponents, build_quota_components
from packages.quota.models.domain.quota import SweepSummary

logger = get_logger(__name__)


async def run_sweep(
    components: QuotaComponents, usage_date: Optional[date] = None
) -> SweepSummary:
    """Run one sweep with already-built components."""
    summary = await components.notifier.sweep(usage_date)
    for error in summary.errors:
        logger.warning(f"Quota warning sweep error: {error}")
    return summary


async def _main(usage_date: Optional[date]) -> int:
    components = build_quota_components(settings)
    try:
        summary = await run_sweep(components, usage_date)
    except StoreError as e:
        logger.error(f"Quota warning sweep aborted: {e}")
        return 1
    finally:
        await components.close()

    logger.info(
        f"Quota warning sweep done: {summary.users_checked} checked, "
        f"{summary.notifications_sent} sent, {len(summary.errors)} errors"
    )
    return 0


def setup_cli() -> argparse.Namespace:
    """Setup CLI arguments."""
    parser = argparse.ArgumentParser(description="Quota warning sweep")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="UTC day to sweep as YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level.upper(),
        help="Log level (default: from settings)",
    )
    return parser.parse_args()


def main():
    """Main entry point with command-line argument support."""
    args = setup_cli()
    logging.getLogger().setLevel(args.log_level)
    sys.exit(asyncio.run(_main(args.date)))


if __name__ == "__main__":
    main()

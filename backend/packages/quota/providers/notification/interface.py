from abc import ABC, abstractmethod
from typing import Optional

from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import NotificationResult


class QuotaWarningSenderInterface(ABC):
    """Interface for delivering quota warning notifications."""

    @abstractmethod
    async def send_quota_warning(
        self,
        email: str,
        name: Optional[str],
        current_usage: int,
        daily_limit: int,
        plan: PlanTier,
        threshold_percent: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> NotificationResult:
        """
        Send a quota warning to a user.

        Args:
            email: Recipient address
            name: Recipient display name, if known
            current_usage: Operations used today
            daily_limit: Daily budget of the user's plan
            plan: The user's plan tier
            threshold_percent: Threshold that triggered the warning
            user_id: The user identifier, for the collaborator's records

        Returns:
            NotificationResult describing delivery success
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass

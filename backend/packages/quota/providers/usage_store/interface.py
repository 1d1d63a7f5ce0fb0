from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import UsageRecord, UserPlanState, UserProfile


class UsageStoreInterface(ABC):
    """
    Interface for usage store providers.

    Implementations raise StoreError for connectivity or query failures and
    never turn a genuine failure into a zero count.
    """

    @abstractmethod
    async def read_count(self, user_id: str, usage_date: date) -> int:
        """
        Read a user's count for one UTC day.

        Args:
            user_id: The user identifier
            usage_date: The UTC calendar date

        Returns:
            The stored count, 0 when no record exists
        """
        pass

    @abstractmethod
    async def increment_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        """
        Atomically add delta to a user's count for one UTC day.

        Creates the record on first use. Must be safe against concurrent
        callers on the same (user_id, usage_date) key.

        Args:
            user_id: The user identifier
            usage_date: The UTC calendar date
            delta: Positive amount to add

        Returns:
            The count after the increment
        """
        pass

    @abstractmethod
    async def decrement_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        """
        Subtract delta from a user's count, clamping at zero.

        Args:
            user_id: The user identifier
            usage_date: The UTC calendar date
            delta: Positive amount to subtract

        Returns:
            The count after the decrement
        """
        pass

    @abstractmethod
    async def reset_all(self, user_id: str, reset_at: datetime) -> int:
        """
        Remove every usage record for a user and stamp the reset time.

        Args:
            user_id: The user identifier
            reset_at: Instant recorded as quota_reset_date

        Returns:
            Number of usage records removed
        """
        pass

    @abstractmethod
    async def read_plan(self, user_id: str) -> Optional[UserPlanState]:
        """Read a user's plan state, None when the user has no profile."""
        pass

    @abstractmethod
    async def write_plan(self, user_id: str, plan: PlanTier) -> UserPlanState:
        """Persist a user's plan, creating the profile when missing."""
        pass

    @abstractmethod
    async def read_profile(self, user_id: str) -> Optional[UserProfile]:
        """Read a user's profile, None when missing."""
        pass

    @abstractmethod
    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        """Create or replace a user's profile."""
        pass

    @abstractmethod
    async def mark_threshold_sent(self, user_id: str, usage_date: date, threshold: int) -> bool:
        """
        Atomically claim the warning marker for one threshold.

        Returns:
            True if this call claimed it, False if it was already claimed
        """
        pass

    @abstractmethod
    async def clear_threshold_marker(self, user_id: str, usage_date: date, threshold: int) -> None:
        """Release a previously claimed warning marker."""
        pass

    @abstractmethod
    async def list_usage(self, usage_date: date) -> List[UsageRecord]:
        """List every record with a positive count on one UTC day."""
        pass

    @abstractmethod
    async def record_usage_event(self, user_id: str, tool_name: str, usage_date: date) -> None:
        """Append an entry to the non-authoritative audit trail."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass

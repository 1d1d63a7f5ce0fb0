import asyncio
from datetime import date, datetime
from typing import Dict, List, Optional, Set, Tuple

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import (
    ToolUsageEvent,
    UsageRecord,
    UserPlanState,
    UserProfile,
)
from packages.quota.periods import Clock, utc_now
from .interface import UsageStoreInterface

logger = get_logger(__name__)


class MemoryUsageStore(UsageStoreInterface):
    """
    In-memory usage store for local development and tests.

    State lives in this process only; every mutation runs under one
    asyncio.Lock so read-modify-write sequences are atomic within the loop.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._counts: Dict[Tuple[str, date], int] = {}
        self._profiles: Dict[str, UserProfile] = {}
        self._markers: Set[Tuple[str, date, int]] = set()
        self._events: List[ToolUsageEvent] = []
        logger.info("Memory usage store initialized")

    @staticmethod
    def _check_delta(delta: int) -> None:
        if delta <= 0:
            raise ValidationError(f"delta must be positive, got {delta}")

    async def read_count(self, user_id: str, usage_date: date) -> int:
        return self._counts.get((user_id, usage_date), 0)

    async def increment_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        async with self._lock:
            key = (user_id, usage_date)
            self._counts[key] = self._counts.get(key, 0) + delta
            return self._counts[key]

    async def decrement_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        async with self._lock:
            key = (user_id, usage_date)
            if key not in self._counts:
                return 0
            self._counts[key] = max(0, self._counts[key] - delta)
            return self._counts[key]

    async def reset_all(self, user_id: str, reset_at: datetime) -> int:
        async with self._lock:
            keys = [key for key in self._counts if key[0] == user_id]
            for key in keys:
                del self._counts[key]

            profile = self._profiles.get(user_id) or UserProfile(user_id=user_id)
            self._profiles[user_id] = profile.model_copy(update={"quota_reset_date": reset_at})
            return len(keys)

    async def read_plan(self, user_id: str) -> Optional[UserPlanState]:
        profile = self._profiles.get(user_id)
        return profile.plan_state() if profile else None

    async def write_plan(self, user_id: str, plan: PlanTier) -> UserPlanState:
        async with self._lock:
            profile = self._profiles.get(user_id) or UserProfile(user_id=user_id)
            profile = profile.model_copy(update={"plan": plan})
            self._profiles[user_id] = profile
            return profile.plan_state()

    async def read_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            self._profiles[profile.user_id] = profile
            return profile

    async def mark_threshold_sent(self, user_id: str, usage_date: date, threshold: int) -> bool:
        async with self._lock:
            marker = (user_id, usage_date, threshold)
            if marker in self._markers:
                return False
            self._markers.add(marker)
            return True

    async def clear_threshold_marker(self, user_id: str, usage_date: date, threshold: int) -> None:
        async with self._lock:
            self._markers.discard((user_id, usage_date, threshold))

    async def list_usage(self, usage_date: date) -> List[UsageRecord]:
        return [
            UsageRecord(user_id=user_id, usage_date=day, count=count)
            for (user_id, day), count in sorted(self._counts.items())
            if day == usage_date and count > 0
        ]

    async def record_usage_event(self, user_id: str, tool_name: str, usage_date: date) -> None:
        self._events.append(
            ToolUsageEvent(
                user_id=user_id,
                tool_name=tool_name,
                usage_date=usage_date,
                created_at=self._clock(),
            )
        )

    def usage_events(self, user_id: Optional[str] = None) -> List[ToolUsageEvent]:
        """Recorded audit events, optionally for one user."""
        return [e for e in self._events if user_id is None or e.user_id == user_id]

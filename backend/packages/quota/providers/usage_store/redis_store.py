import json
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncGenerator, Dict, List, Optional

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.quota.cache_keys import (
    active_users_key,
    daily_usage_key,
    profile_key,
    threshold_marker_key,
    usage_events_key,
    user_usage_days_key,
)
from packages.quota.exceptions import StoreError
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import UsageRecord, UserPlanState, UserProfile
from packages.quota.periods import Clock, utc_now
from .interface import UsageStoreInterface

logger = get_logger(__name__)

# Clamp at zero and leave missing keys missing.
DECREMENT_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 0
end
local value = tonumber(redis.call('GET', KEYS[1])) - tonumber(ARGV[1])
if value < 0 then
    value = 0
end
redis.call('SET', KEYS[1], value, 'KEEPTTL')
return value
"""


class RedisUsageStore(UsageStoreInterface):
    """
    Redis-based usage store.

    Daily counters are plain integer keys changed with INCRBY, so the
    increment is atomic across every process sharing the Redis instance.
    Per-day keys expire after the retention window; profiles do not.
    """

    def __init__(
        self,
        client: redis.Redis,
        retention_days: int = 35,
        clock: Clock = utc_now,
    ):
        self._client = client
        self._ttl_seconds = retention_days * 24 * 60 * 60
        self._clock = clock
        self._decrement = self._client.register_script(DECREMENT_SCRIPT)

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncGenerator[None, None]:
        """Turn Redis and row-shape errors into StoreError."""
        try:
            yield
        except RedisError as e:
            logger.error(
                f"Usage store {operation} failed: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} failed") from e
        except PydanticValidationError as e:
            logger.error(
                f"Usage store {operation} returned malformed data: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} returned malformed data") from e
        except ValueError as e:
            logger.error(
                f"Usage store {operation} found a corrupt value: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Usage store {operation} found a corrupt value") from e

    @staticmethod
    def _check_delta(delta: int) -> None:
        if delta <= 0:
            raise ValidationError(f"delta must be positive, got {delta}")

    @staticmethod
    def _profile_from_hash(user_id: str, data: Dict[str, str]) -> UserProfile:
        return UserProfile(
            user_id=user_id,
            email=data.get("email") or None,
            full_name=data.get("full_name") or None,
            plan=data.get("plan") or None,
            quota_reset_date=data.get("quota_reset_date") or None,
            quota_warnings_enabled=data.get("quota_warnings_enabled", "1") == "1",
        )

    @staticmethod
    def _profile_to_hash(profile: UserProfile) -> Dict[str, str]:
        return {
            "email": profile.email or "",
            "full_name": profile.full_name or "",
            "plan": profile.plan.value,
            "quota_reset_date": (
                profile.quota_reset_date.isoformat() if profile.quota_reset_date else ""
            ),
            "quota_warnings_enabled": "1" if profile.quota_warnings_enabled else "0",
        }

    @trace_span
    async def read_count(self, user_id: str, usage_date: date) -> int:
        async with self._guard("read_count"):
            value = await self._client.get(daily_usage_key(user_id, usage_date))
            return int(value) if value is not None else 0

    @trace_span
    async def increment_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        key = daily_usage_key(user_id, usage_date)
        async with self._guard("increment_count"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incrby(key, delta)
                pipe.expire(key, self._ttl_seconds)
                pipe.sadd(active_users_key(usage_date), user_id)
                pipe.expire(active_users_key(usage_date), self._ttl_seconds)
                pipe.sadd(user_usage_days_key(user_id), usage_date.isoformat())
                pipe.expire(user_usage_days_key(user_id), self._ttl_seconds)
                results = await pipe.execute()
            return int(results[0])

    @trace_span
    async def decrement_count(self, user_id: str, usage_date: date, delta: int = 1) -> int:
        self._check_delta(delta)
        async with self._guard("decrement_count"):
            value = await self._decrement(
                keys=[daily_usage_key(user_id, usage_date)], args=[delta]
            )
            return int(value)

    @trace_span
    async def reset_all(self, user_id: str, reset_at: datetime) -> int:
        async with self._guard("reset_all"):
            days = await self._client.smembers(user_usage_days_key(user_id))
            async with self._client.pipeline(transaction=True) as pipe:
                for day in days:
                    usage_date = date.fromisoformat(day)
                    pipe.delete(daily_usage_key(user_id, usage_date))
                    pipe.srem(active_users_key(usage_date), user_id)
                pipe.delete(user_usage_days_key(user_id))
                pipe.hset(
                    profile_key(user_id),
                    mapping={"quota_reset_date": reset_at.isoformat()},
                )
                results = await pipe.execute()
            # DELETE results sit at every other position before the trailing two
            return sum(int(r) for r in results[0 : 2 * len(days) : 2])

    @trace_span
    async def read_plan(self, user_id: str) -> Optional[UserPlanState]:
        profile = await self.read_profile(user_id)
        return profile.plan_state() if profile else None

    @trace_span
    async def write_plan(self, user_id: str, plan: PlanTier) -> UserPlanState:
        async with self._guard("write_plan"):
            await self._client.hset(profile_key(user_id), mapping={"plan": plan.value})
        profile = await self.read_profile(user_id)
        return profile.plan_state()

    @trace_span
    async def read_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self._guard("read_profile"):
            data = await self._client.hgetall(profile_key(user_id))
            if not data:
                return None
            return self._profile_from_hash(user_id, data)

    @trace_span
    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        async with self._guard("upsert_profile"):
            await self._client.hset(
                profile_key(profile.user_id), mapping=self._profile_to_hash(profile)
            )
        return profile

    @trace_span
    async def mark_threshold_sent(self, user_id: str, usage_date: date, threshold: int) -> bool:
        async with self._guard("mark_threshold_sent"):
            claimed = await self._client.set(
                threshold_marker_key(user_id, usage_date, threshold),
                self._clock().isoformat(),
                nx=True,
                ex=self._ttl_seconds,
            )
            return bool(claimed)

    @trace_span
    async def clear_threshold_marker(self, user_id: str, usage_date: date, threshold: int) -> None:
        async with self._guard("clear_threshold_marker"):
            await self._client.delete(threshold_marker_key(user_id, usage_date, threshold))

    @trace_span
    async def list_usage(self, usage_date: date) -> List[UsageRecord]:
        async with self._guard("list_usage"):
            user_ids = sorted(await self._client.smembers(active_users_key(usage_date)))
            if not user_ids:
                return []
            values = await self._client.mget(
                [daily_usage_key(user_id, usage_date) for user_id in user_ids]
            )
            return [
                UsageRecord(user_id=user_id, usage_date=usage_date, count=int(value))
                for user_id, value in zip(user_ids, values)
                if value is not None and int(value) > 0
            ]

    @trace_span
    async def record_usage_event(self, user_id: str, tool_name: str, usage_date: date) -> None:
        key = usage_events_key(user_id, usage_date)
        event = json.dumps(
            {"tool_name": tool_name, "created_at": self._clock().isoformat()}
        )
        async with self._guard("record_usage_event"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, event)
                pipe.expire(key, self._ttl_seconds)
                await pipe.execute()

    async def close(self) -> None:
        """Disconnect from Redis."""
        await self._client.aclose()
        logger.info("Redis usage store disconnected")

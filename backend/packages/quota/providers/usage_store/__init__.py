"""Usage store providers - per-user daily counters, plans and warning markers."""

from packages.quota.providers.usage_store.interface import UsageStoreInterface
from packages.quota.providers.usage_store.memory_store import MemoryUsageStore
from packages.quota.providers.usage_store.redis_store import RedisUsageStore
from packages.quota.providers.usage_store.sql_store import SqlUsageStore
from packages.quota.providers.usage_store.factory import create_usage_store

__all__ = [
    "UsageStoreInterface",
    "MemoryUsageStore",
    "RedisUsageStore",
    "SqlUsageStore",
    "create_usage_store",
]

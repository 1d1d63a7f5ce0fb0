from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class UsageStoreBackend(str, Enum):
    """Usage store backend types."""

    SQL = "sql"
    REDIS = "redis"
    MEMORY = "memory"


class NotificationProvider(str, Enum):
    """Quota warning delivery providers."""

    LOG = "log"
    HTTP = "http"

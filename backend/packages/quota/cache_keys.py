"""Redis key generators for quota package."""

from datetime import date


def daily_usage_key(user_id: str, usage_date: date) -> str:
    """Generate key for a user's counter on one UTC day."""
    return f"quota:usage:{user_id}:{usage_date.isoformat()}"


def user_usage_days_key(user_id: str) -> str:
    """Generate key for the set of days a user has a counter for."""
    return f"quota:usage_days:{user_id}"


def active_users_key(usage_date: date) -> str:
    """Generate key for the set of users with usage on one UTC day."""
    return f"quota:active_users:{usage_date.isoformat()}"


def profile_key(user_id: str) -> str:
    """Generate key for a user's profile hash."""
    return f"quota:profile:{user_id}"


def threshold_marker_key(user_id: str, usage_date: date, threshold: int) -> str:
    """Generate key for the at-most-once marker of one warning threshold."""
    return f"quota:warning_sent:{user_id}:{usage_date.isoformat()}:{threshold}"


def usage_events_key(user_id: str, usage_date: date) -> str:
    """Generate key for a user's audit event list on one UTC day."""
    return f"quota:events:{user_id}:{usage_date.isoformat()}"

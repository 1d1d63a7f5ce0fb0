"""
Domain models for billing lifecycle events.

Typed payload the billing collaborator hands to PlanChangeListener after it
has verified and parsed its own webhook.
"""

from typing import Optional
from pydantic import BaseModel

from packages.quota.models.domain.enums import (
    SubscriptionEventType,
    SubscriptionStatus,
)


class SubscriptionLifecycleEvent(BaseModel):
    """A subscription was created, changed or removed for a user."""

    type: SubscriptionEventType
    user_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    plan: Optional[str] = None  # Validated by the listener, not here
    subscription_id: Optional[str] = None

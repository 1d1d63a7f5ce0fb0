"""
Database entities for daily quotas.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    true,
)
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class DailyUsageEntity(Base):
    """
    Daily usage counter entity.

    One row per (user, UTC day). This is the canonical counter used for
    enforcement; rows from previous days are kept for history.
    """

    __tablename__ = "daily_usage"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    usage_date = Column(Date, nullable=False, index=True)
    operation_count = Column(Integer, nullable=False, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),
        CheckConstraint("operation_count >= 0", name="ck_daily_usage_non_negative"),
    )


class QuotaProfileEntity(Base):
    """
    Per-user plan and contact details.

    plan is written by billing events only; quota_reset_date is stamped by
    the administrative reset.
    """

    __tablename__ = "quota_profiles"

    user_id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    plan = Column(String(20), nullable=False, server_default="free")
    quota_reset_date = Column(DateTime(timezone=True), nullable=True)
    quota_warnings_enabled = Column(Boolean, nullable=False, server_default=true())

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class QuotaNotificationEntity(Base):
    """
    Sent-marker for quota warnings.

    The unique key makes the claim atomic: a threshold can be recorded once
    per user per UTC day.
    """

    __tablename__ = "quota_notifications"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    usage_date = Column(Date, nullable=False)
    threshold = Column(Integer, nullable=False)  # percent, e.g. 80 or 100
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "user_id", "usage_date", "threshold", name="uq_quota_notification"
        ),
    )


class ToolUsageEventEntity(Base):
    """
    Audit trail of metered operations.

    Not used for enforcement. Writes are best effort.
    """

    __tablename__ = "tool_usage_events"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    tool_name = Column(String(100), nullable=False)
    usage_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_tool_usage_user_date", "user_id", "usage_date"),)

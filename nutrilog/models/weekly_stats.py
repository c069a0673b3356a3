"""
Weekly stats - materialized per-user aggregate of nutrition records
"""
from sqlalchemy import Column, String, Float, Integer, ForeignKey, UniqueConstraint

from nutrilog.database import Base
from nutrilog.utils.db_compat import UTCDateTime, new_id, utc_now


class WeeklyStats(Base):
    """One row per (user, ISO week). Averages divide by actual_days, not 7."""
    __tablename__ = "weekly_stats"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    week_start_date = Column(UTCDateTime, nullable=False)  # Monday 00:00 reference zone, as UTC

    total_calories = Column(Float, nullable=False, default=0.0)
    total_protein = Column(Float, nullable=False, default=0.0)
    avg_daily_calories = Column(Float, nullable=False, default=0.0)
    avg_protein = Column(Float, nullable=False, default=0.0)
    records_count = Column(Integer, nullable=False, default=0)
    actual_days = Column(Integer, nullable=False, default=0)

    # Last-write timestamps: updated_at moves on every recompute
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_weekly_stats_user_week"),
    )

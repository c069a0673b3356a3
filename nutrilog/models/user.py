"""
User model - created lazily from the external (pre-authenticated) id
"""
from sqlalchemy import Column, Integer, String, Float

from nutrilog.config import get_settings
from nutrilog.database import Base
from nutrilog.utils.db_compat import UTCDateTime, utc_now


def _default_calorie_goal() -> int:
    return get_settings().DEFAULT_DAILY_CALORIE_GOAL


def _default_protein_goal() -> float:
    return get_settings().DEFAULT_DAILY_PROTEIN_GOAL


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # external opaque id
    email = Column(String, nullable=False)  # placeholder until the auth provider fills it
    daily_calorie_goal = Column(Integer, nullable=False, default=_default_calorie_goal)
    daily_protein_goal = Column(Float, nullable=False, default=_default_protein_goal)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

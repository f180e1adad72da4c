"""
SQLAlchemy models for prayer times: one row per day per location.
"""
from sqlalchemy import Column, String, Date, DateTime, Integer, JSON, UniqueConstraint

from planner.core.db import Base


class PrayerTimesRecord(Base):
    """One day's prayer times at one location. data is JSON: {prayer_name: "HH:MM"}."""
    __tablename__ = "prayer_times_records"
    __table_args__ = (UniqueConstraint("location_key", "prayer_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_key = Column(String(64), nullable=False, index=True)  # "lat,lon" rounded to 4 places
    fetched_at = Column(DateTime(timezone=False), nullable=False, index=True)
    prayer_date = Column(Date, nullable=False, index=True)
    data = Column(JSON, nullable=False)

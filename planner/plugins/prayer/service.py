"""
Service layer: prayer times per day (DB-cached provider results) and the strict-mode timeline.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import select, delete

from planner.core.db import session_scope
from planner.core.errors import ConfigInvalid
from planner.core.time_utils import get_zone, local_today
from planner.core.timeline import (
    DEFAULT_PRAYER_MINUTES,
    Timeline,
    anchor_instants,
    build_timeline,
    resolve_loop_day,
)
from planner.plugins.prayer.models import PrayerTimesRecord
from planner.plugins.prayer.prayer_base import PrayerBackend


def location_from_settings(settings: Mapping[str, Any]) -> Tuple[float, float, str]:
    """(latitude, longitude, timezone) from the settings blob."""
    latitude = settings.get("latitude")
    longitude = settings.get("longitude")
    tz_name = settings.get("timezone")
    if latitude is None or longitude is None or not tz_name:
        raise ConfigInvalid("Settings have no location; set latitude, longitude and timezone first")
    get_zone(tz_name)
    return float(latitude), float(longitude), tz_name


def location_key(latitude: float, longitude: float) -> str:
    return f"{latitude:.4f},{longitude:.4f}"


def save_prayer_times(latitude: float, longitude: float, prayer_date: date, times: Dict[str, str]) -> None:
    """Replace the stored prayer times for this location and date."""
    key = location_key(latitude, longitude)
    fetched_at = datetime.now(timezone.utc).replace(tzinfo=None)
    with session_scope() as session:
        session.execute(
            delete(PrayerTimesRecord).where(
                PrayerTimesRecord.location_key == key,
                PrayerTimesRecord.prayer_date == prayer_date,
            )
        )
        session.add(
            PrayerTimesRecord(
                location_key=key,
                fetched_at=fetched_at,
                prayer_date=prayer_date,
                data=dict(times),
            )
        )


def get_prayer_times_record(latitude: float, longitude: float, prayer_date: date) -> Optional[PrayerTimesRecord]:
    with session_scope() as session:
        return (
            session.execute(
                select(PrayerTimesRecord).where(
                    PrayerTimesRecord.location_key == location_key(latitude, longitude),
                    PrayerTimesRecord.prayer_date == prayer_date,
                )
            )
            .scalars().first()
        )


def get_latest_prayer_times_record() -> Optional[PrayerTimesRecord]:
    """Return the most recently fetched PrayerTimesRecord (for API serialization)."""
    with session_scope() as session:
        return (
            session.execute(
                select(PrayerTimesRecord)
                .order_by(PrayerTimesRecord.fetched_at.desc())
                .limit(1)
            )
            .scalars().first()
        )


def get_day_times(backend: PrayerBackend, prayer_date: date, latitude: float, longitude: float) -> Dict[str, str]:
    """Prayer times for a day: from the DB if already fetched, otherwise from the provider."""
    record = get_prayer_times_record(latitude, longitude, prayer_date)
    if record is not None:
        return dict(record.data)
    times = backend.get_prayer_times(prayer_date, latitude, longitude)
    save_prayer_times(latitude, longitude, prayer_date, times)
    return times


def compute_timeline(
    settings: Mapping[str, Any],
    backend: PrayerBackend,
    now: datetime,
    default_prayer_minutes: float = DEFAULT_PRAYER_MINUTES,
) -> Timeline:
    """Build the timeline of the daily loop containing now.

    Before today's Fajr the loop is yesterday's, closed by today's Fajr; otherwise it is
    today's, closed by tomorrow's Fajr.
    """
    latitude, longitude, tz_name = location_from_settings(settings)
    activities = settings.get("schedule")
    if not activities:
        raise ConfigInvalid("Settings have no activity schedule")

    today = local_today(tz_name, now)
    today_times = get_day_times(backend, today, latitude, longitude)
    loop_day = resolve_loop_day(today_times, tz_name, now)
    if loop_day == today:
        loop_times = today_times
        closing_times = get_day_times(backend, today + timedelta(days=1), latitude, longitude)
    else:
        loop_times = get_day_times(backend, loop_day, latitude, longitude)
        closing_times = today_times

    instants = anchor_instants(loop_times, tz_name, loop_day)
    next_fajr = anchor_instants(closing_times, tz_name, loop_day + timedelta(days=1))["fajr"]
    return build_timeline(activities, instants, next_fajr, now, default_prayer_minutes)

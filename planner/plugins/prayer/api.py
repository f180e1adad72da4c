"""
Per-plugin API for the strict schedule. Mounted at /api/components/prayer/.
Uses PrayerTimesRecord ORM with Pydantic from_attributes.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from planner.core.errors import SettingsNotFound
from planner.core.time_utils import utc_now
from planner.core.timeline import DEFAULT_PRAYER_MINUTES, find_item
from .service import compute_timeline, get_latest_prayer_times_record


class PrayerTimesRecordResponse(BaseModel):
    """Pydantic view of PrayerTimesRecord for API; serializes from ORM."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    location_key: Optional[str] = None
    fetched_at: Optional[datetime] = None
    prayer_date: Optional[date] = None
    data: Optional[Dict[str, Any]] = None


class ScheduleItemResponse(BaseModel):
    """One timeline item (ScheduleItem fields)."""

    id: str
    name: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    is_prayer: bool = False
    is_custom: bool = False


class TimelineResponse(BaseModel):
    schedule: List[ScheduleItemResponse]
    current: ScheduleItemResponse
    next: ScheduleItemResponse


def get_router(planner_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/prayer."""
    router = APIRouter(tags=["Strict Schedule"])

    def _timeline():
        settings = planner_app.store.get()
        if settings is None:
            raise SettingsNotFound("No settings stored yet; set up a location first")
        default_minutes = planner_app.config.section("prayer").get("default_prayer_minutes", DEFAULT_PRAYER_MINUTES)
        return compute_timeline(settings, planner_app.backend, utc_now(), default_minutes)

    @router.get("/data", response_model=PrayerTimesRecordResponse)
    def get_data() -> PrayerTimesRecordResponse:
        """Return latest prayer times record from DB (ORM serialized via Pydantic)."""
        record = get_latest_prayer_times_record()
        if record is None:
            raise HTTPException(status_code=404, detail="No prayer times data available")
        return PrayerTimesRecordResponse.model_validate(record)

    @router.get("/timeline", response_model=TimelineResponse)
    def get_timeline() -> TimelineResponse:
        """Build today's timeline for the stored settings and locate current/next."""
        timeline = _timeline()
        return TimelineResponse(
            schedule=[ScheduleItemResponse(**item._asdict()) for item in timeline.schedule],
            current=ScheduleItemResponse(**timeline.current._asdict()),
            next=ScheduleItemResponse(**timeline.next._asdict()),
        )

    @router.get("/timeline/{item_id}", response_model=ScheduleItemResponse)
    def get_timeline_item(item_id: str) -> ScheduleItemResponse:
        item = find_item(_timeline(), item_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"No timeline item {item_id}")
        return ScheduleItemResponse(**item._asdict())

    return router

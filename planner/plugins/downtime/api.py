"""
Per-plugin API for downtime mode. Mounted at /api/components/downtime/.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from planner.core.downtime import DowntimeState, activity_end_time
from planner.core.errors import SettingsNotFound


class PausedStateResponse(BaseModel):
    activity: str
    remaining_ms: int


class DowntimeStateResponse(BaseModel):
    """Stored downtime state plus when the running activity ends."""

    activities: List[str]
    current_activity_index: int
    current_activity: str
    activity_start_time: Optional[datetime] = None
    activity_end_time: Optional[datetime] = None
    last_grip_time: Optional[datetime] = None
    grip_strength_enabled: bool
    quran_turn: bool
    paused_state: Optional[PausedStateResponse] = None
    last_notified_activity: str = ""


def get_router(planner_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/downtime."""
    router = APIRouter(tags=["Downtime"])

    @router.get("/state", response_model=DowntimeStateResponse)
    def get_state() -> DowntimeStateResponse:
        settings = planner_app.store.get()
        if settings is None:
            raise SettingsNotFound("No settings stored yet; set up a location first")
        state = DowntimeState.from_dict(settings.get("downtime"))
        timings = planner_app.downtime_task.timings()
        paused = state.paused_state
        return DowntimeStateResponse(
            activities=list(state.activities),
            current_activity_index=state.current_activity_index,
            current_activity=state.current_activity,
            activity_start_time=state.activity_start_time,
            activity_end_time=activity_end_time(state, timings["rotation_minutes"], timings["grip_minutes"]),
            last_grip_time=state.last_grip_time,
            grip_strength_enabled=state.grip_strength_enabled,
            quran_turn=state.quran_turn,
            paused_state=PausedStateResponse(**paused._asdict()) if paused else None,
            last_notified_activity=state.last_notified_activity,
        )

    return router

"""
Per-plugin API for the settings blob. Mounted at /api/components/settings/.
Every write goes through planner_app.apply_settings_action so the ticks re-run right after.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from planner.core.errors import SettingsNotFound


class SettingsActionRequest(BaseModel):
    """POST body: one named action and its payload."""

    action: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class SettingsResponse(BaseModel):
    settings: Optional[Dict[str, Any]] = None


def get_router(planner_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/settings."""
    router = APIRouter(tags=["Settings"])

    @router.get("/", response_model=SettingsResponse)
    def get_settings() -> SettingsResponse:
        settings = planner_app.store.get()
        if settings is None:
            raise SettingsNotFound("No settings stored yet; set up a location first")
        return SettingsResponse(settings=settings)

    @router.post("/", response_model=SettingsResponse)
    def post_action(request: SettingsActionRequest) -> SettingsResponse:
        """Apply an action (setup_location, toggle_mode, complete_grip, ...) and return the new blob."""
        return SettingsResponse(settings=planner_app.apply_settings_action(request.action, request.payload))

    @router.delete("/", response_model=SettingsResponse)
    def reset_settings() -> SettingsResponse:
        planner_app.apply_settings_action("reset")
        return SettingsResponse(settings=None)

    return router

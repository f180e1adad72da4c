"""
FastAPI server for the planner API. Run with run_api_server(app) in a background thread.
Central endpoints: GET /api/display, GET /api/tasks. Per-plugin routes are mounted
from planner.plugins.<package>.api (get_router(planner_app)) under /api/components/<package>/.
Docs when enabled: http://<host>:<port>/docs
"""
import importlib
import logging
import pkgutil
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from planner.core.errors import ConfigInvalid, PlannerError, ProviderUnavailable, SettingsNotFound, StorageError

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (SettingsNotFound, 404),
    (ConfigInvalid, 400),
    (ProviderUnavailable, 503),
    (StorageError, 500),
)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO string (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _status_for(error: PlannerError) -> int:
    return next((status for cls, status in _ERROR_STATUS if isinstance(error, cls)), 500)


def create_app(planner_app: Any) -> FastAPI:
    """Create FastAPI app with routes that use the given PlannerApp instance."""
    app = FastAPI(title="Prayer Planner API", description="Display, tasks, schedule and settings")

    @app.exception_handler(PlannerError)
    async def planner_error_handler(request: Request, exc: PlannerError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning(f"{request.method} {request.url.path} failed ({status}): {exc}")
        return JSONResponse(status_code=status, content={"detail": str(exc), "error": exc.__class__.__name__})

    @app.get("/api/display")
    def get_display() -> Dict[str, Any]:
        """Current/next activity and countdown as last rendered by the one-second tick."""
        return planner_app.display.snapshot()

    @app.get("/api/tasks")
    def list_tasks() -> Dict[str, Any]:
        """List scheduled tasks: DB schedules and active in-memory timers."""
        from planner.core.models import get_all_task_schedules

        db_schedules = get_all_task_schedules()
        for row in db_schedules:
            row["next_run_at"] = _serialize_datetime(row.get("next_run_at"))
            row["last_run_at"] = _serialize_datetime(row.get("last_run_at"))

        active_timers = planner_app.task_manager.get_active_timers()
        active_list = [
            {"name": t["name"], "next_run_at": _serialize_datetime(t["next_run_at"])}
            for t in active_timers
        ]

        return {"db_schedules": db_schedules, "active_timers": active_list}

    # Mount per-plugin API routers from planner.plugins.<name>.api (get_router(planner_app))
    try:
        plugins_pkg = importlib.import_module("planner.plugins")
        for _mod, name, is_pkg in pkgutil.iter_modules(plugins_pkg.__path__):
            if not is_pkg:
                continue
            try:
                api_module = importlib.import_module(f"planner.plugins.{name}.api")
            except ImportError:
                continue
            if not hasattr(api_module, "get_router") or not callable(api_module.get_router):
                continue
            try:
                router = api_module.get_router(planner_app)
                if router is not None:
                    app.include_router(router, prefix=f"/api/components/{name}")
            except Exception as e:
                logger.warning(f"Failed to mount API router for plugin {name}: {e}", exc_info=True)
    except Exception as e:
        logger.warning(f"Plugin API discovery failed: {e}", exc_info=True)

    return app


def run_api_server(planner_app: Any) -> None:
    """
    Start the API server in a daemon thread if api.enabled is true.
    Reads api.host (default 127.0.0.1) and api.port (default 8765) from config.
    """
    api_config = planner_app.config.section("api")
    enabled = api_config.get("enabled", False)
    logger.info(f"API config: enabled={enabled}, config_file={planner_app.config.config_file}")
    if not enabled:
        logger.info("API server not started: set api.enabled to true in your config file to enable.")
        return
    host = api_config.get("host", "127.0.0.1")
    port = int(api_config.get("port", 8765))
    fastapi_app = create_app(planner_app)

    def run_uvicorn():
        try:
            import uvicorn
            logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
            uvicorn.run(fastapi_app, host=host, port=port)
        except Exception as e:
            logger.exception(f"API server thread failed: {e}")

    thread = threading.Thread(target=run_uvicorn, daemon=True)
    thread.start()
    logger.info("API server thread started.")

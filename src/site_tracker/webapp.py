"""FastAPI application exposing the tracker's commands and host signal intake."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from .export import SnapshotError, build_csv
from .host import HostRegistry
from .messages import (
    ExportAll,
    FocusGained,
    FocusLost,
    GetLimits,
    GetSettings,
    GetStatus,
    GetTodayStats,
    IdleStateChanged,
    ImportSnapshot,
    Message,
    Navigated,
    RemoveConstraint,
    SetConstraint,
    SetPaused,
    SetSettings,
    TargetRemoved,
)
from .models import LimitUnit, Session
from .paths import get_db_path
from .service import TrackingService

logger = logging.getLogger(__name__)


class ServiceUnavailableError(RuntimeError):
    """Raised when a request arrives while the tracking service is stopped."""


class TrackerRunner:
    """Manage the tracking service in a background thread."""

    def __init__(
        self,
        db_path: Path,
        registry: HostRegistry,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._registry = registry
        self._overrides = dict(overrides or {})
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._service: Optional[TrackingService] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            service = TrackingService(
                self._db_path,
                self._registry,
                idle_configurator=self._registry,
                overrides=self._overrides,
            )
            thread = threading.Thread(
                target=service.run_until_stopped,
                args=(stop_event,),
                name="tracking-service",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._service = service
            thread.start()
            logger.info("Tracking service thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
            self._service = None
        if thread:
            thread.join(timeout=10)
            logger.info("Tracking service thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def call(self, message: Message, timeout: float = 5.0) -> Any:
        with self._lock:
            service = self._service
        if service is None:
            raise ServiceUnavailableError("Tracking service is not running.")
        return service.call(message, timeout=timeout)


class FocusPayload(BaseModel):
    target_id: Optional[int] = None
    url: Optional[str] = None
    window_id: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class NavigatePayload(BaseModel):
    target_id: int
    url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class TargetPayload(BaseModel):
    target_id: int

    model_config = ConfigDict(extra="forbid")


class IdlePayload(BaseModel):
    state: Literal["active", "idle", "locked"]

    model_config = ConfigDict(extra="forbid")


class PausePayload(BaseModel):
    paused: bool

    model_config = ConfigDict(extra="forbid")


class ConstraintPayload(BaseModel):
    limit: int = Field(gt=0)
    unit: LimitUnit = LimitUnit.MINUTES
    enabled: bool = True

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    registry: Optional[HostRegistry] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    host_registry = registry or HostRegistry()
    runner = TrackerRunner(resolved_db_path, host_registry, overrides)

    app = FastAPI(title="Site Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.tracker_runner = runner
    app.state.host_registry = host_registry

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    def dispatch(request: Request, message: Message) -> Any:
        try:
            return request.app.state.tracker_runner.call(message)
        except ServiceUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except FutureTimeoutError as exc:
            raise HTTPException(status_code=504, detail="Tracking service timed out") from exc

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        running = request.app.state.tracker_runner.is_running()
        payload: Dict[str, Any] = {
            "running": running,
            "database_path": str(request.app.state.db_path),
            "idle_timeout_seconds": request.app.state.host_registry.idle_timeout_seconds,
        }
        if running:
            payload.update(dispatch(request, GetStatus()))
        return payload

    @app.get("/api/stats/today")
    def today_stats(request: Request) -> Dict[str, Any]:
        return dispatch(request, GetTodayStats())

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        return {"settings": dispatch(request, GetSettings())}

    @app.put("/api/settings")
    def update_settings(
        request: Request, values: Dict[str, Any] = Body(...)
    ) -> Dict[str, Any]:
        return {"success": True, "settings": dispatch(request, SetSettings(values=values))}

    @app.post("/api/pause")
    def set_paused(payload: PausePayload, request: Request) -> Dict[str, Any]:
        settings = dispatch(request, SetPaused(paused=payload.paused))
        return {"success": True, "settings": settings}

    @app.get("/api/export")
    def export(
        request: Request,
        format: Literal["json", "csv"] = Query(
            default="json", description="Export format: json snapshot or csv table."
        ),
    ) -> Any:
        snapshot = dispatch(request, ExportAll())
        if format == "csv":
            return PlainTextResponse(
                build_csv(snapshot.get("site_stats") or {}),
                media_type="text/csv",
                headers={"Content-Disposition": "attachment; filename=site-tracker-export.csv"},
            )
        return {"data": snapshot}

    @app.post("/api/import")
    def import_snapshot(
        request: Request, data: Dict[str, Any] = Body(...)
    ) -> Dict[str, Any]:
        try:
            settings = dispatch(request, ImportSnapshot(data=data))
        except SnapshotError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "settings": settings}

    @app.get("/api/limits")
    def list_limits(request: Request) -> Dict[str, Any]:
        return {"limits": dispatch(request, GetLimits())}

    @app.put("/api/limits/{domain}")
    def set_limit(domain: str, payload: ConstraintPayload, request: Request) -> Dict[str, Any]:
        if not domain.strip():
            raise HTTPException(status_code=400, detail="domain is required")
        constraint = dispatch(
            request,
            SetConstraint(
                domain=domain,
                limit=payload.limit,
                unit=payload.unit,
                enabled=payload.enabled,
            ),
        )
        return {"constraint": constraint}

    @app.delete("/api/limits/{domain}")
    def remove_limit(domain: str, request: Request) -> Dict[str, Any]:
        if not dispatch(request, RemoveConstraint(domain=domain)):
            raise HTTPException(status_code=404, detail="Constraint not found")
        return {"success": True}

    @app.post("/api/signals/focus")
    def focus(payload: FocusPayload, request: Request) -> Dict[str, Any]:
        registry: HostRegistry = request.app.state.host_registry
        if payload.target_id is None:
            registry.set_focused(None)
            return _session_payload(dispatch(request, FocusLost()))
        if payload.url is not None:
            registry.upsert_target(payload.target_id, payload.url, payload.window_id)
        registry.set_focused(payload.target_id)
        return _session_payload(dispatch(request, FocusGained(target_id=payload.target_id)))

    @app.post("/api/signals/blur")
    def blur(request: Request) -> Dict[str, Any]:
        request.app.state.host_registry.set_focused(None)
        return _session_payload(dispatch(request, FocusLost()))

    @app.post("/api/signals/navigate")
    def navigate(payload: NavigatePayload, request: Request) -> Dict[str, Any]:
        request.app.state.host_registry.upsert_target(payload.target_id, payload.url)
        return _session_payload(dispatch(request, Navigated(target_id=payload.target_id)))

    @app.post("/api/signals/removed")
    def removed(payload: TargetPayload, request: Request) -> Dict[str, Any]:
        request.app.state.host_registry.remove_target(payload.target_id)
        return _session_payload(dispatch(request, TargetRemoved(target_id=payload.target_id)))

    @app.post("/api/signals/idle")
    def idle(payload: IdlePayload, request: Request) -> Dict[str, Any]:
        return _session_payload(dispatch(request, IdleStateChanged(state=payload.state)))

    return app


def _session_payload(session: Optional[Session]) -> Dict[str, Any]:
    return {"session": asdict(session) if session else None}

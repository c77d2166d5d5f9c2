"""
FastAPI Console API for the Registry Console.

Runs on 0.0.0.0:8090 next to the web UI, which proxies every /api/* request
here. All workflow state lives on this process's single event loop:

- Read endpoints (repositories, stats, image lists) are served from the
  dashboard cache and go to the registry API on a miss.
- Each delete-by-date session is a DeleteByDateWorkflow. Opening the
  confirmation dialog and committing a deletion take longer than a request,
  so those two endpoints answer 202 and the page polls the session snapshot.

Sessions are tracked in memory; the last console.max_sessions idle sessions
are kept. Restarting the process clears them.
"""

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from registry_console import __version__
from registry_console.config_manager import config_manager
from registry_console.confirmation import ConfirmationState
from registry_console.error_utils import ActionableError, FetchError, InvalidTransitionError, ValidationError
from registry_console.logging_utils import get_logger, log_exception, setup_logging
from registry_console.services import ConsoleServices
from registry_console.workflow import DeleteByDateWorkflow

logger = get_logger(__name__)

# ── Service container ─────────────────────────────────────────────────────────

_services: Optional[ConsoleServices] = None


def get_services() -> ConsoleServices:
    if _services is None:
        raise RuntimeError("Console services are not initialised (app lifespan has not started)")
    return _services


# ── In-memory session store ────────────────────────────────────────────────────

_sessions: "OrderedDict[str, DeleteByDateWorkflow]" = OrderedDict()


def _trim_sessions(max_sessions: int) -> None:
    """Drop the oldest idle sessions when the store exceeds max_sessions"""
    for session_id in list(_sessions):
        if len(_sessions) <= max_sessions:
            break
        if not _sessions[session_id].is_busy:
            logger.debug(f"Dropping idle session {session_id}")
            del _sessions[session_id]


def _get_session(session_id: str) -> DeleteByDateWorkflow:
    workflow = _sessions.get(session_id)
    if workflow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return workflow


# ── FastAPI app ────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _services
    setup_logging()
    if _services is None:
        _services = ConsoleServices.from_config(config_manager)
    logger.info("Console API starting")

    yield

    logger.info("Console API shutting down")
    for workflow in _sessions.values():
        workflow.cancel()
    # Commits in flight still deliver their outcome and refresh
    await asyncio.gather(*(workflow.wait_idle() for workflow in _sessions.values()))
    _sessions.clear()
    await _services.aclose()
    _services = None


app = FastAPI(
    title="Registry Console API",
    version=__version__,
    description="Delete-by-date workflow and dashboard views over the registry API.",
    docs_url="/docs",
    lifespan=lifespan,
)


# ── Error mapping ──────────────────────────────────────────────────────────────


def _error_response(status_code: int, error: ActionableError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error.message, "category": error.category.value, "suggestions": error.suggestions},
    )


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(InvalidTransitionError)
async def _transition_error(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(FetchError)
async def _fetch_error(request: Request, exc: FetchError) -> JSONResponse:
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc)


# ── Request models ─────────────────────────────────────────────────────────────


class SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repository: str
    threshold_days: Any = Field(default=None, alias="thresholdDays")


class ThresholdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    threshold_days: Any = Field(default=None, alias="thresholdDays")


class DismissRequest(BaseModel):
    signal: str = "cancel"


class DeleteImagesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repository_name: str = Field(alias="repositoryName")
    image_digests: List[str] = Field(alias="imageDigests")


# ── Routes: health and dashboard ───────────────────────────────────────────────


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/health-checks")
async def health_checks(services: ConsoleServices = Depends(get_services)) -> Dict[str, Any]:
    """Configuration and registry API checks"""
    results = await services.health.run_all_checks()
    return {"healthy": all(r.status for r in results), "checks": [r.to_api() for r in results]}


@app.get("/api/repositories")
async def list_repositories(
    search: Optional[str] = None, services: ConsoleServices = Depends(get_services)
) -> List[str]:
    return await services.dashboard.repositories(search)


@app.get("/api/global-stats")
async def global_stats(
    limit: str = Query("20", description="Number of top repositories, or 'all'"),
    services: ConsoleServices = Depends(get_services),
) -> Dict[str, Any]:
    if limit.lower() == "all":
        return await services.dashboard.global_stats(None)
    try:
        top = int(limit)
    except ValueError:
        raise ValidationError(f"limit must be a number or 'all', got: {limit}") from None
    return await services.dashboard.global_stats(top)


@app.get("/api/dashboard")
async def repository_dashboard(
    repository: str,
    limit: Optional[int] = None,
    services: ConsoleServices = Depends(get_services),
) -> Dict[str, Any]:
    return await services.dashboard.repository_stats(repository, limit)


@app.get("/api/images")
async def list_images(
    repository: str,
    type: str = "all",
    limit: Optional[int] = None,
    services: ConsoleServices = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.dashboard.image_list(repository, type, limit)


@app.post("/api/images/delete")
async def delete_images(req: DeleteImagesRequest, services: ConsoleServices = Depends(get_services)) -> Dict[str, Any]:
    """Delete specific images (the image table's per-row delete).

    Answers after the refresh signal, so the page can reload its tables right away.
    """
    outcome = await services.commit_engine.delete_images(req.repository_name, req.image_digests)
    reporter = services.new_reporter()
    await reporter.announce(outcome)
    await reporter.settle(outcome)
    return outcome.to_api()


# ── Routes: delete-by-date sessions ────────────────────────────────────────────


@app.post("/api/delete-by-date/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(req: SessionRequest, services: ConsoleServices = Depends(get_services)) -> Dict[str, Any]:
    workflow = services.new_workflow(req.repository)
    if req.threshold_days is not None:
        workflow.set_threshold(req.threshold_days)

    _sessions[workflow.id] = workflow
    _trim_sessions(services.config.get_max_sessions())
    logger.info(f"Opened delete-by-date session {workflow.id} for {workflow.repository}")
    return workflow.snapshot()


@app.get("/api/delete-by-date/sessions/{session_id}")
async def get_session(session_id: str) -> Dict[str, Any]:
    return _get_session(session_id).snapshot()


@app.delete("/api/delete-by-date/sessions/{session_id}")
async def close_session(session_id: str) -> Dict[str, str]:
    workflow = _get_session(session_id)
    if workflow.gate.state is ConfirmationState.COMMITTING:
        raise ValidationError(
            "Cannot close the session while a deletion is in progress",
            suggestions=["Wait for the deletion outcome, then close the session"],
        )
    workflow.cancel()
    del _sessions[session_id]
    return {"message": "Session closed"}


@app.put("/api/delete-by-date/sessions/{session_id}/threshold")
async def set_threshold(session_id: str, req: ThresholdRequest) -> Dict[str, Any]:
    workflow = _get_session(session_id)
    workflow.set_threshold(req.threshold_days)
    return workflow.snapshot()


@app.post("/api/delete-by-date/sessions/{session_id}/preview")
async def run_preview(session_id: str) -> Dict[str, Any]:
    workflow = _get_session(session_id)
    await workflow.run_preview()
    return workflow.snapshot()


@app.post("/api/delete-by-date/sessions/{session_id}/confirm", status_code=status.HTTP_202_ACCEPTED)
async def request_confirmation(session_id: str) -> Dict[str, Any]:
    """Start opening the confirmation dialog. Poll the session until state is 'open'."""
    workflow = _get_session(session_id)
    workflow.start_confirmation()
    return workflow.snapshot()


@app.post("/api/delete-by-date/sessions/{session_id}/dismiss")
async def dismiss(session_id: str, req: DismissRequest) -> Dict[str, Any]:
    workflow = _get_session(session_id)
    closed = workflow.dismiss(req.signal)
    snapshot = workflow.snapshot()
    snapshot["dismissed"] = closed
    return snapshot


@app.post("/api/delete-by-date/sessions/{session_id}/commit", status_code=status.HTTP_202_ACCEPTED)
async def commit(session_id: str) -> Dict[str, Any]:
    """Send the previewed digests for deletion. Poll the session until state is 'closed'."""
    workflow = _get_session(session_id)
    workflow.start_commit()
    return workflow.snapshot()


# ── Routes: notifications ──────────────────────────────────────────────────────


@app.get("/api/notifications")
async def list_notifications(services: ConsoleServices = Depends(get_services)) -> List[Dict[str, Any]]:
    return [toast.to_api() for toast in services.notifications.active()]


@app.delete("/api/notifications/{toast_id}")
async def dismiss_notification(toast_id: str, services: ConsoleServices = Depends(get_services)) -> Dict[str, bool]:
    return {"dismissed": services.notifications.dismiss(toast_id)}


def main() -> None:
    import uvicorn

    try:
        uvicorn.run(app, host=config_manager.get_console_host(), port=config_manager.get_console_port())
    except OSError as e:
        log_exception(logger, "Console API failed to start", e)
        raise


if __name__ == "__main__":
    main()

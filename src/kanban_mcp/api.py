"""FastAPI HTTP control surface for the board."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from . import __version__
from .config import KanbanSettings, get_settings
from .errors import (
    ConfigurationError,
    KanbanError,
    ProjectNotFoundError,
    SpawnError,
    TaskAlreadyRunningError,
    TaskCapacityError,
    TicketNotFoundError,
    WorkflowError,
)
from .orchestration import TaskOrchestrator
from .tracker import JiraError

logger = logging.getLogger(__name__)

ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (TicketNotFoundError, 404),
    (ProjectNotFoundError, 404),
    (ConfigurationError, 400),
    (WorkflowError, 409),
    (TaskAlreadyRunningError, 409),
    (TaskCapacityError, 409),
    (SpawnError, 500),
    (JiraError, 502),
    (KanbanError, 500),
)


# --- Request models ---

class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StartTaskRequest(_CamelRequest):
    ticket_id: str
    project_id: Optional[str] = None


class ReworkRequest(_CamelRequest):
    additional_request: str = Field(default="", description="What the agent should change")


class ImportRequest(_CamelRequest):
    issues: Optional[list[dict[str, Any]]] = Field(
        default=None, description="Issues to import; fetched from Jira when omitted"
    )


def _error_response(exc: Exception) -> JSONResponse:
    status = 500
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status = code
            break
    return JSONResponse(status_code=status, content={"success": False, "error": str(exc)})


def create_app(
    orchestrator: TaskOrchestrator,
    *,
    reconcile_on_startup: bool = True,
) -> FastAPI:
    """Build the HTTP app around an orchestrator."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if reconcile_on_startup:
            actions = await orchestrator.reconcile_orphans()
            if actions:
                logger.warning("Reconciled orphaned tickets", extra={"count": len(actions)})
        yield
        await orchestrator.shutdown()

    app = FastAPI(
        title="Kanban MCP API",
        description="Ticket board control surface driving Claude agent runs",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for error_type, _ in ERROR_STATUS:
        app.add_exception_handler(error_type, lambda request, exc: _error_response(exc))

    @app.exception_handler(ValidationError)
    async def _invalid_fields(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # --- Tickets ---

    @app.get("/api/tickets")
    async def list_tickets(status: Optional[str] = Query(None)):
        tickets = await orchestrator.list_tickets()
        if status:
            tickets = [ticket for ticket in tickets if ticket.get("status") == status]
        return tickets

    @app.post("/api/tickets", status_code=201)
    async def create_ticket(fields: dict[str, Any]):
        return await orchestrator.create_ticket(fields)

    @app.get("/api/tickets/{ticket_id}")
    async def get_ticket(ticket_id: str):
        return await orchestrator.get_ticket(ticket_id)

    @app.put("/api/tickets/{ticket_id}")
    async def update_ticket(ticket_id: str, fields: dict[str, Any]):
        return await orchestrator.update_ticket(ticket_id, fields)

    @app.delete("/api/tickets/{ticket_id}")
    async def delete_ticket(ticket_id: str):
        return await orchestrator.delete_ticket(ticket_id)

    @app.post("/api/reset")
    async def reset():
        return await orchestrator.reset()

    # --- Task runs ---

    @app.post("/api/tasks/start")
    async def start_task(body: StartTaskRequest):
        return await orchestrator.start(body.ticket_id, project_id=body.project_id)

    @app.get("/api/tasks/running")
    async def running_tasks():
        return orchestrator.running()

    @app.get("/api/tasks/{ticket_id}/log")
    async def task_log(ticket_id: str):
        return await orchestrator.task_log(ticket_id)

    @app.post("/api/tasks/{ticket_id}/stop")
    async def stop_task(ticket_id: str):
        return await orchestrator.stop(ticket_id)

    @app.post("/api/tasks/{ticket_id}/approve")
    async def approve_task(ticket_id: str):
        return await orchestrator.approve(ticket_id)

    @app.post("/api/tasks/{ticket_id}/complete")
    async def complete_task(ticket_id: str):
        return await orchestrator.complete(ticket_id)

    @app.post("/api/tasks/{ticket_id}/rework")
    async def rework_task(ticket_id: str, body: ReworkRequest):
        return await orchestrator.rework(ticket_id, body.additional_request)

    @app.get("/api/tasks/{ticket_id}/changes")
    async def task_changes(ticket_id: str):
        return await orchestrator.changes(ticket_id)

    # --- Jira ---

    @app.get("/api/jira/issues")
    async def jira_issues():
        return await orchestrator.tracker_issues()

    @app.post("/api/jira/import")
    async def jira_import(body: Optional[ImportRequest] = None):
        if body is not None and body.issues is not None:
            issues = body.issues
        else:
            issues = await orchestrator.tracker_issues()
        return await orchestrator.import_issues(issues)

    @app.get("/api/jira/test")
    async def jira_test():
        return await orchestrator.tracker_test()

    # --- Projects ---

    @app.get("/api/projects")
    async def list_projects():
        return orchestrator.list_projects()

    return app


def build_app(settings: KanbanSettings | None = None) -> FastAPI:
    from .server import build_orchestrator

    settings = settings or get_settings()
    return create_app(build_orchestrator(settings))


def main() -> None:
    """Entry point for serving the HTTP API with uvicorn."""

    import uvicorn

    from .server import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)
    app = build_app(settings)
    logger.info(
        "Launching Kanban HTTP API",
        extra={"version": __version__, "host": settings.host, "port": settings.port},
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()

"""FastAPI app factory.

Run with `uvicorn devin_workflow_orchestrator.server:create_app --factory`.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import cast

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from devin_workflow_orchestrator.orchestrator.config import WorkflowRunOptions, WorkflowSettings
from devin_workflow_orchestrator.orchestrator.workflow.executor import AgentClient
from devin_workflow_orchestrator.orchestrator.workflow.runner import (
    ValidationReport,
    validate_workflow,
)
from devin_workflow_orchestrator.server.config import ServerSettings
from devin_workflow_orchestrator.server.job_store import JobRecord, JobStore
from devin_workflow_orchestrator.server.models import (
    JobStatus,
    RunRequest,
    ValidateRequest,
    WorkflowJob,
)
from devin_workflow_orchestrator.server.workflow_runner import start_workflow_job

logger = logging.getLogger(__name__)


def _iso_to_dt(value: str) -> datetime:
    # Best-effort parsing; the store always writes ISO format.
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(tz=UTC)


def _to_api_job(record: JobRecord) -> WorkflowJob:
    return WorkflowJob(
        job_id=record.job_id,
        status=cast(JobStatus, record.status),
        step_count=record.step_count,
        created_at=_iso_to_dt(record.created_at),
        updated_at=_iso_to_dt(record.updated_at),
        summary=record.summary,
        error=record.error,
    )


def create_app(
    settings: WorkflowSettings | None = None,
    *,
    client: AgentClient | None = None,
) -> FastAPI:
    """Build the app.

    `client` replaces the Devin HTTP client for every run (tests, alternative
    transports); by default each job builds its own from the settings.
    """

    workflow_settings = settings or WorkflowSettings()
    server_settings = ServerSettings()

    app = FastAPI(
        title="Devin Workflow Orchestrator",
        version="0.1.0",
        description="REST API for validating and running markdown-defined Devin workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.settings = workflow_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    job_store = JobStore()
    app.state.job_store = job_store

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/workflows/validate", response_model=ValidationReport)
    def validate(req: ValidateRequest) -> ValidationReport:
        return validate_workflow(req.markdown)

    @app.post("/api/v1/workflows/run", response_model=WorkflowJob, status_code=202)
    def run(req: RunRequest) -> WorkflowJob:
        report = validate_workflow(req.markdown)
        if not report.valid:
            raise HTTPException(
                status_code=400,
                detail={"message": "Workflow validation failed", "errors": report.errors},
            )

        options = WorkflowRunOptions.from_settings(
            workflow_settings,
            mock_mode=req.mock_mode,
            polling_interval=req.polling_interval,
            first_polling_interval=req.first_polling_interval,
            max_polls=req.max_polls,
            timeout=req.timeout,
            verbose=False,
        )
        if client is None and not options.mock_mode and not options.api_key.strip():
            raise HTTPException(
                status_code=409,
                detail="DEVIN_API_KEY is required unless mock mode is enabled",
            )

        job_id = start_workflow_job(
            markdown=req.markdown,
            step_count=len(report.steps),
            options=options,
            job_store=job_store,
            client=client,
        )
        record = job_store.get(job_id)
        if record is None:
            raise HTTPException(status_code=500, detail="Job creation failed")
        logger.info("Workflow job started", extra={"job_id": job_id, "steps": len(report.steps)})
        return _to_api_job(record)

    @app.get("/api/v1/jobs", response_model=list[WorkflowJob])
    def list_jobs() -> list[WorkflowJob]:
        return [_to_api_job(record) for record in job_store.list()]

    @app.get("/api/v1/jobs/{job_id}", response_model=WorkflowJob)
    def get_job(job_id: str) -> WorkflowJob:
        record = job_store.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return _to_api_job(record)

    @app.post("/api/v1/jobs/{job_id}/stop", response_model=WorkflowJob)
    def stop_job(job_id: str) -> WorkflowJob:
        try:
            record = job_store.request_stop(job_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Job not found") from None
        logger.info("Workflow job stop requested", extra={"job_id": job_id})
        return _to_api_job(record)

    return app

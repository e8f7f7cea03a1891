"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from devin_workflow_orchestrator.orchestrator.workflow.runner import ExecutionSummary


class ValidateRequest(BaseModel):
    markdown: str


class RunRequest(BaseModel):
    markdown: str

    # Overrides; anything left unset comes from the server's settings.
    mock_mode: bool | None = None
    polling_interval: float | None = Field(default=None, ge=0)
    first_polling_interval: float | None = Field(default=None, ge=0)
    max_polls: int | None = Field(default=None, gt=0)
    timeout: float | None = Field(default=None, ge=0)


JobStatus = Literal["queued", "running", "stopping", "succeeded", "failed", "stopped"]


class WorkflowJob(BaseModel):
    job_id: str
    status: JobStatus
    step_count: int

    created_at: datetime
    updated_at: datetime

    summary: ExecutionSummary | None = None
    error: str | None = None

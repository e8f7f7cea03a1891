"""In-memory tracking of workflow runs started through the server.

Jobs live only as long as the process: a workflow run is a foreground,
human-initiated job and is not resumed after a restart.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel

from devin_workflow_orchestrator.orchestrator.workflow.polling import CancellationToken
from devin_workflow_orchestrator.orchestrator.workflow.runner import ExecutionSummary


class JobRecord(BaseModel):
    job_id: str
    status: str
    created_at: str
    updated_at: str
    step_count: int = 0

    summary: ExecutionSummary | None = None
    error: str | None = None


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class JobStore:
    _jobs: dict[str, JobRecord] = field(default_factory=dict)
    _tokens: dict[str, CancellationToken] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def list(self) -> list[JobRecord]:
        with self._lock:
            return list(self._jobs.values())

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._jobs.get(job_id)

    def token(self, job_id: str) -> CancellationToken | None:
        with self._lock:
            return self._tokens.get(job_id)

    def create(self, *, job_id: str, step_count: int) -> JobRecord:
        with self._lock:
            now = _utc_iso_now()
            record = JobRecord(
                job_id=job_id,
                status="queued",
                created_at=now,
                updated_at=now,
                step_count=step_count,
            )
            self._jobs[job_id] = record
            self._tokens[job_id] = CancellationToken()
            return record

    def update(self, job_id: str, **updates: object) -> JobRecord:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            merged = job.model_copy(update={"updated_at": _utc_iso_now(), **updates})
            self._jobs[job_id] = merged
            return merged

    def request_stop(self, job_id: str) -> JobRecord:
        """Signal the job's cancellation token; finished jobs are left untouched."""

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if job.status not in {"queued", "running"}:
                return job
            self._tokens[job_id].cancel()
            merged = job.model_copy(update={"updated_at": _utc_iso_now(), "status": "stopping"})
            self._jobs[job_id] = merged
            return merged

    def mark_running(self, job_id: str) -> JobRecord:
        """Move a queued job to running; a stop requested meanwhile is kept."""

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if job.status != "queued":
                return job
            merged = job.model_copy(update={"updated_at": _utc_iso_now(), "status": "running"})
            self._jobs[job_id] = merged
            return merged

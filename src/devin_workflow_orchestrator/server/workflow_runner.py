"""Background runner for workflow jobs."""

from __future__ import annotations

import logging
import threading
import uuid

from devin_workflow_orchestrator.orchestrator.config import WorkflowRunOptions
from devin_workflow_orchestrator.orchestrator.workflow.executor import AgentClient
from devin_workflow_orchestrator.orchestrator.workflow.runner import start_workflow
from devin_workflow_orchestrator.server.job_store import JobStore

logger = logging.getLogger(__name__)


def start_workflow_job(
    *,
    markdown: str,
    step_count: int,
    options: WorkflowRunOptions,
    job_store: JobStore,
    client: AgentClient | None = None,
) -> str:
    job_id = uuid.uuid4().hex
    job_store.create(job_id=job_id, step_count=step_count)

    thread = threading.Thread(
        target=_run_job,
        name=f"workflow-{job_id}",
        daemon=True,
        kwargs={
            "job_id": job_id,
            "markdown": markdown,
            "options": options,
            "job_store": job_store,
            "client": client,
        },
    )
    thread.start()
    return job_id


def _run_job(
    *,
    job_id: str,
    markdown: str,
    options: WorkflowRunOptions,
    job_store: JobStore,
    client: AgentClient | None,
) -> None:
    token = job_store.token(job_id)
    job_store.mark_running(job_id)

    try:
        summary = start_workflow(
            markdown,
            options.model_copy(update={"verbose": False}),
            client=client,
            cancel=token,
        )
    except Exception as e:
        logger.exception("Workflow job failed", extra={"job_id": job_id})
        job_store.update(job_id, status="failed", error=str(e))
        return

    if summary.stopped:
        status = "stopped"
    elif summary.success:
        status = "succeeded"
    else:
        status = "failed"
    job_store.update(job_id, status=status, summary=summary, error=summary.error)

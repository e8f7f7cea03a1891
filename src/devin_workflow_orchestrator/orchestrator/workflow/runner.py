"""Entry points: run a workflow end to end, or validate it without any network calls.

Both functions return result models instead of raising for expected failures
(bad configuration, invalid documents, session creation errors), so callers such
as the CLI and the REST server only need to relay what they get back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from devin_workflow_orchestrator.orchestrator.config import (
    ConfigurationError,
    WorkflowRunOptions,
    WorkflowSettings,
)
from devin_workflow_orchestrator.orchestrator.devin.client import DevinClient

from .executor import (
    AgentClient,
    SessionCreationError,
    WorkflowOrchestrator,
    WorkflowStepResult,
    format_duration,
)
from .parser import (
    WorkflowParseError,
    WorkflowStep,
    WorkflowSummary,
    parse_workflow,
    summarize_steps,
    validate_steps,
)
from .polling import CancellationToken

logger = logging.getLogger(__name__)

NO_STEPS_ERROR = "Workflow contains no valid steps"
MOCK_API_KEY = "mock-test-key"


class ValidationReport(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    steps: list[WorkflowStep] = Field(default_factory=list)
    summary: WorkflowSummary | None = None


class ExecutionSummary(BaseModel):
    """Outcome of `start_workflow`.

    On failure before or during execution `success` is False and `error` holds
    the reason; step counters then describe whatever ran before the failure.
    """

    success: bool
    error: str | None = None
    stopped: bool = False
    total_steps: int = 0
    successful_steps: int = 0
    failed_steps: int = 0
    steps_with_handoffs: int = 0
    total_execution_time_ms: int = 0
    average_step_time_ms: float = 0.0
    session_ids: list[str] = Field(default_factory=list)
    completion_rate: float = 0.0
    workflow_config: dict[str, object] = Field(default_factory=dict)
    step_results: list[WorkflowStepResult] = Field(default_factory=list)
    executed_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())


def validate_workflow(markdown: str) -> ValidationReport:
    """Parse and validate a workflow document. No side effects."""

    try:
        steps = parse_workflow(markdown).steps
    except WorkflowParseError as exc:
        return ValidationReport(valid=False, errors=[str(exc)])

    if not steps:
        return ValidationReport(valid=False, errors=[NO_STEPS_ERROR])

    validation = validate_steps(steps)
    return ValidationReport(
        valid=validation.valid,
        errors=validation.errors,
        warnings=validation.warnings,
        steps=steps,
        summary=summarize_steps(steps),
    )


def summarize_results(
    results: list[WorkflowStepResult],
    *,
    total_execution_time_ms: int,
    workflow_config: dict[str, object],
    error: str | None = None,
    stopped: bool = False,
) -> ExecutionSummary:
    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    return ExecutionSummary(
        success=error is None and not failed and not stopped,
        error=error,
        stopped=stopped,
        total_steps=len(results),
        successful_steps=len(successful),
        failed_steps=len(failed),
        steps_with_handoffs=sum(1 for r in successful if r.handoff_result),
        total_execution_time_ms=total_execution_time_ms,
        average_step_time_ms=(
            sum(r.execution_time_ms for r in successful) / len(successful) if successful else 0.0
        ),
        session_ids=[r.session_id for r in successful],
        completion_rate=(len(successful) / len(results) * 100) if results else 0.0,
        workflow_config=workflow_config,
        step_results=results,
    )


def start_workflow(
    markdown: str,
    options: WorkflowRunOptions | None = None,
    *,
    client: AgentClient | None = None,
    cancel: CancellationToken | None = None,
    echo: Callable[[str], None] | None = print,
) -> ExecutionSummary:
    """Parse, validate and execute a workflow.

    `options` defaults to values loaded from the environment / `.env`. A `client`
    may be injected (tests, alternative transports); otherwise a `DevinClient` is
    built from the options. `echo` receives console narration when
    `options.verbose` is set.
    """

    started = time.monotonic()
    if options is None:
        options = WorkflowRunOptions.from_settings(WorkflowSettings())
    say = echo if (options.verbose and echo is not None) else None
    config_echo = options.echo_config()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    def failure(message: str, results: list[WorkflowStepResult] | None = None) -> ExecutionSummary:
        logger.error("Workflow execution failed", extra={"error": message})
        if say is not None:
            say(f"Workflow execution failed after {format_duration(elapsed_ms())}")
            say(f"Error: {message}")
        return summarize_results(
            results or [],
            total_execution_time_ms=elapsed_ms(),
            workflow_config=config_echo,
            error=message,
        )

    api_key = options.api_key.strip()
    if options.mock_mode and not api_key:
        api_key = MOCK_API_KEY
    if client is None and not api_key:
        return failure(
            "API key is required. Set DEVIN_API_KEY or pass an API key, "
            "or enable mock mode for testing."
        )

    report = validate_workflow(markdown)
    if not report.valid:
        return failure(f"Workflow validation failed: {', '.join(report.errors)}")

    owned_client: DevinClient | None = None
    if client is None:
        owned_client = DevinClient(
            api_key=api_key,
            base_url=options.effective_base_url,
            knowledge_ids=options.knowledge_ids,
        )
        client = owned_client

    try:
        orchestrator = WorkflowOrchestrator(
            client=client,
            repo_base_url=options.repo_base_url,
            polling=options.polling_config(),
            echo=say,
        )
    except ConfigurationError as exc:
        if owned_client is not None:
            owned_client.close()
        return failure(str(exc))

    if say is not None:
        _narrate_start(say, options, report)

    try:
        results = orchestrator.execute_workflow(report.steps, cancel=cancel)
    except SessionCreationError as exc:
        return failure(str(exc), exc.results)
    finally:
        if owned_client is not None:
            owned_client.close()

    stopped = cancel is not None and cancel.cancelled
    summary = summarize_results(
        results,
        total_execution_time_ms=elapsed_ms(),
        workflow_config=config_echo,
        stopped=stopped,
    )
    logger.info(
        "Workflow execution finished",
        extra={
            "success": summary.success,
            "successful_steps": summary.successful_steps,
            "failed_steps": summary.failed_steps,
            "stopped": stopped,
        },
    )
    if say is not None:
        _narrate_summary(say, summary)
    return summary


def start_workflow_quiet(
    markdown: str,
    options: WorkflowRunOptions | None = None,
    *,
    client: AgentClient | None = None,
    cancel: CancellationToken | None = None,
) -> ExecutionSummary:
    if options is None:
        options = WorkflowRunOptions.from_settings(WorkflowSettings())
    quiet = options.model_copy(update={"verbose": False})
    return start_workflow(markdown, quiet, client=client, cancel=cancel)


def start_workflow_mock(
    markdown: str,
    options: WorkflowRunOptions | None = None,
    *,
    client: AgentClient | None = None,
    cancel: CancellationToken | None = None,
    echo: Callable[[str], None] | None = print,
) -> ExecutionSummary:
    """Run against the local mock API with short intervals."""

    if options is None:
        options = WorkflowRunOptions.from_settings(WorkflowSettings())
    mock_options = options.model_copy(
        update={
            "mock_mode": True,
            "api_key": MOCK_API_KEY,
            "polling_interval": 2.0,
            "first_polling_interval": 2.0,
            "timeout": 60.0,
        }
    )
    return start_workflow(markdown, mock_options, client=client, cancel=cancel, echo=echo)


def _narrate_start(
    say: Callable[[str], None], options: WorkflowRunOptions, report: ValidationReport
) -> None:
    say("Starting workflow execution")
    say(f"  Mock mode: {'enabled' if options.mock_mode else 'disabled'}")
    say(f"  Max polls: {options.max_polls}")
    say(f"  First polling interval: {options.first_polling_interval}s")
    say(f"  Polling interval: {options.polling_interval}s")
    say(f"  Timeout: {options.timeout}s" if options.timeout else "  Timeout: none")
    say(f"Parsed {len(report.steps)} steps")
    if report.warnings:
        say(f"Warnings: {', '.join(report.warnings)}")
    if report.summary is not None:
        s = report.summary
        say(f"  Steps with playbooks: {s.steps_with_playbooks}")
        say(f"  Steps with handoffs: {s.steps_with_handoffs}")
        say(f"  Steps with repos: {s.steps_with_repos}")
        say(f"  Steps relying on previous: {s.steps_relying_on_previous}")


def _narrate_summary(say: Callable[[str], None], summary: ExecutionSummary) -> None:
    say("Execution complete")
    say(f"Status: {'SUCCESS' if summary.success else 'FAILED'}")
    say(f"Steps: {summary.successful_steps}/{summary.total_steps} completed")
    say(f"Total time: {format_duration(summary.total_execution_time_ms)}")
    say(f"Completion rate: {summary.completion_rate:.1f}%")
    say(f"Average step time: {format_duration(summary.average_step_time_ms)}")
    if summary.steps_with_handoffs:
        say(f"Handoffs completed: {summary.steps_with_handoffs}")
    for result in summary.step_results:
        if not result.success:
            say(f"  Step {result.step_number} failed: {result.error}")
    for index, session_id in enumerate(summary.session_ids, 1):
        say(f"  {index}. {session_id}")

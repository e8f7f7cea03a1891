"""Unit tests for the workflow entry points."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from devin_workflow_orchestrator.orchestrator.config import WorkflowRunOptions
from devin_workflow_orchestrator.orchestrator.devin.client import DevinApiError
from devin_workflow_orchestrator.orchestrator.workflow.polling import CancellationToken
from devin_workflow_orchestrator.orchestrator.workflow.runner import (
    NO_STEPS_ERROR,
    start_workflow,
    start_workflow_mock,
    start_workflow_quiet,
    validate_workflow,
)

WORKFLOW = """## Overview
Two-step delivery.

## Step 1: Analyse
- Prompt: Analyse the backlog item
- Handoff: List the acceptance criteria
- Repo: app

## Step 2: Build
- Prompt: Implement the acceptance criteria
"""


@pytest.fixture
def options() -> WorkflowRunOptions:
    return WorkflowRunOptions(
        api_key="test-key",
        repo_base_url="dev.azure.com/acme/project/_git/",
        polling_interval=0,
        first_polling_interval=0,
        max_polls=3,
        verbose=False,
    )


@pytest.fixture
def finishing_devin(mock_devin: Mock, make_session) -> Mock:
    mock_devin.get_session.side_effect = lambda session_id: make_session(
        session_id, messages=[f"Result of {session_id}", "sleep"]
    )
    return mock_devin


def test_validate_workflow_returns_steps_and_summary() -> None:
    report = validate_workflow(WORKFLOW)

    assert report.valid is True
    assert [s.title for s in report.steps] == ["Analyse", "Build"]
    assert report.summary is not None
    assert report.summary.steps_with_handoffs == 1
    assert report.warnings == ["Step 2: Relies on previous step but has no handoff instruction"]


def test_validate_workflow_rejects_empty_documents() -> None:
    report = validate_workflow("# Nothing to do\n")
    assert report.valid is False
    assert report.errors == [NO_STEPS_ERROR]


def test_validate_workflow_reports_parse_errors() -> None:
    report = validate_workflow("## Step 1: A\n- Handoff: x\n")
    assert report.valid is False
    assert report.errors == ["Step 1: Prompt is required"]


def test_start_workflow_summarizes_successful_run(finishing_devin, options) -> None:
    summary = start_workflow(WORKFLOW, options, client=finishing_devin)

    assert summary.success is True
    assert summary.error is None
    assert summary.total_steps == 2
    assert summary.successful_steps == 2
    assert summary.failed_steps == 0
    assert summary.steps_with_handoffs == 1
    assert summary.session_ids == ["devin-1", "devin-2"]
    assert summary.completion_rate == 100.0
    assert summary.step_results[1].relied_on_previous is True
    assert summary.workflow_config == {
        "mock_mode": False,
        "polling_interval": 0.0,
        "first_polling_interval": 0.0,
        "max_polls": 3,
        "timeout": 0.0,
    }


def test_start_workflow_counts_failed_steps(mock_devin, make_session, options) -> None:
    sessions = {
        "devin-1": make_session("devin-1", messages=["still going"]),
        "devin-2": make_session("devin-2", messages=["Built", "sleep"]),
    }
    mock_devin.get_session.side_effect = lambda session_id: sessions[session_id]

    summary = start_workflow(WORKFLOW, options, client=mock_devin)

    assert summary.success is False
    assert summary.error is None
    assert summary.failed_steps == 1
    assert summary.successful_steps == 1
    assert summary.completion_rate == 50.0
    assert summary.session_ids == ["devin-2"]


def test_start_workflow_requires_api_key(options) -> None:
    summary = start_workflow(WORKFLOW, options.model_copy(update={"api_key": "  "}))

    assert summary.success is False
    assert summary.error is not None
    assert summary.error.startswith("API key is required")


def test_start_workflow_rejects_invalid_document(mock_devin, options) -> None:
    summary = start_workflow("# No steps here\n", options, client=mock_devin)

    assert summary.success is False
    assert summary.error == f"Workflow validation failed: {NO_STEPS_ERROR}"
    mock_devin.create_session.assert_not_called()


def test_start_workflow_requires_repo_base_url(mock_devin, options) -> None:
    summary = start_workflow(
        WORKFLOW, options.model_copy(update={"repo_base_url": ""}), client=mock_devin
    )

    assert summary.success is False
    assert "ADO_URL" in (summary.error or "")
    mock_devin.create_session.assert_not_called()


def test_start_workflow_reports_session_creation_failure(mock_devin, options) -> None:
    mock_devin.create_session.side_effect = DevinApiError(
        operation="create session", status_code=401, body="unauthorized"
    )

    summary = start_workflow(WORKFLOW, options, client=mock_devin)

    assert summary.success is False
    assert summary.error == "Step 1: Failed to create session: HTTP 401: unauthorized"
    assert summary.total_steps == 0


def test_start_workflow_reports_stop(finishing_devin, options) -> None:
    token = CancellationToken()
    token.cancel()

    summary = start_workflow(WORKFLOW, options, client=finishing_devin, cancel=token)

    assert summary.stopped is True
    assert summary.success is False
    assert summary.total_steps == 0


def test_verbose_run_narrates(finishing_devin, options) -> None:
    lines: list[str] = []

    start_workflow(
        WORKFLOW,
        options.model_copy(update={"verbose": True}),
        client=finishing_devin,
        echo=lines.append,
    )

    assert lines[0] == "Starting workflow execution"
    assert "Parsed 2 steps" in lines
    assert "Status: SUCCESS" in lines


def test_quiet_run_prints_nothing(finishing_devin, options, capsys) -> None:
    summary = start_workflow_quiet(
        WORKFLOW, options.model_copy(update={"verbose": True}), client=finishing_devin
    )

    assert summary.success is True
    assert capsys.readouterr().out == ""


def test_mock_run_uses_short_intervals(finishing_devin, options) -> None:
    summary = start_workflow_mock(WORKFLOW, options, client=finishing_devin, echo=None)

    assert summary.success is True
    assert summary.workflow_config["mock_mode"] is True
    assert summary.workflow_config["polling_interval"] == 2.0
    assert summary.workflow_config["timeout"] == 60.0

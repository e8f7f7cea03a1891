#!/usr/bin/env python3
"""Programmatic workflow run example.

This demonstrates using the orchestrator components directly:

* load settings from `.env` (DEVIN_API_KEY, ADO_URL, polling options)
* validate a markdown workflow
* execute it step by step and write the execution summary as JSON

Pass `--mock` to run against a local mock Devin API (DEVIN_MOCK_API_URL).
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from devin_workflow_orchestrator.orchestrator.config import WorkflowRunOptions, WorkflowSettings
from devin_workflow_orchestrator.orchestrator.logging import configure_logging
from devin_workflow_orchestrator.orchestrator.workflow.runner import (
    start_workflow,
    start_workflow_mock,
    validate_workflow,
)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a Devin workflow (programmatic example).")
    parser.add_argument(
        "--workflow",
        default=str(Path(__file__).with_name("feature_workflow.md")),
        help="Path to the workflow markdown file",
    )
    parser.add_argument("--mock", action="store_true", help="Use the mock Devin API")
    parser.add_argument(
        "--output", default="execution_summary.json", help="Where to write the summary"
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = WorkflowSettings()
    configure_logging(settings.log_level)

    markdown = Path(args.workflow).read_text(encoding="utf-8")
    report = validate_workflow(markdown)
    if not report.valid:
        for error in report.errors:
            print(f"error: {error}")
        return 2

    options = WorkflowRunOptions.from_settings(settings)
    if args.mock:
        summary = start_workflow_mock(markdown, options)
    else:
        summary = start_workflow(markdown, options)

    Path(args.output).write_text(
        json.dumps(summary.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8"
    )
    print(f"Summary written to: {args.output}")
    return 0 if summary.success else 1


if __name__ == "__main__":
    raise SystemExit(main())

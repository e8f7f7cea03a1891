"""Workflow engine.

- `parser`: markdown document -> ordered `WorkflowStep`s
- `prompt`: per-step session prompt and repo inheritance
- `polling` / `state_machine`: waiting for a session to signal completion
- `executor`: sequential step execution and the results ledger
- `runner`: `start_workflow` / `validate_workflow` entry points
"""

from devin_workflow_orchestrator.orchestrator.workflow.runner import (
    ExecutionSummary,
    ValidationReport,
    start_workflow,
    validate_workflow,
)

__all__ = ["ExecutionSummary", "ValidationReport", "start_workflow", "validate_workflow"]

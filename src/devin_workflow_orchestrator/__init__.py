"""Devin Workflow Orchestrator.

Runs markdown-defined, multi-step workflows against the Devin coding-agent API:
- configuration loaded from `.env`
- structured logging
- one Devin session per step, with handoff data and repo inheritance between steps
"""

__version__ = "0.1.0"

from devin_workflow_orchestrator.orchestrator.config import WorkflowSettings

__all__ = ["__version__", "WorkflowSettings"]

"""FastAPI server adapter for devin-workflow-orchestrator.

Business logic stays in `devin_workflow_orchestrator.orchestrator.*`; routing,
CORS and job tracking live here.
"""

from __future__ import annotations

__all__ = ["create_app"]

from devin_workflow_orchestrator.server.app import create_app

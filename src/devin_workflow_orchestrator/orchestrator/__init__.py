"""Workflow orchestration components.

Provides:
- Settings loaded from .env
- Structured logging
- A small CLI surface
- The Devin API client, the workflow parser and the step executor
"""

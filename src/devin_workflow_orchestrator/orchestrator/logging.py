"""JSON log lines for workflow runs.

Every record becomes one JSON object on stderr. The identifiers that tie a
line to a run (`job_id`, `step`, `session_id`) sit at the top level so a run
can be followed with a plain `grep`; any other `extra=` fields are nested under
`"extra"`. The human-readable step narration of `run --verbose` is printed by
the runner itself and does not pass through these handlers.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# Fields lifted out of `extra` so they line up across runner, executor and poller logs.
CORRELATION_FIELDS: tuple[str, ...] = ("job_id", "step", "session_id")

# Attributes every LogRecord carries; anything else was passed through `extra=`.
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        }
        for key in CORRELATION_FIELDS:
            if key in fields:
                entry[key] = fields.pop(key)
        if fields:
            entry["extra"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: Any = None) -> None:
    """Send all orchestrator logs through a single JSON handler.

    stdout is reserved for the run narration and `--json` summaries, so the
    handler writes to stderr unless a stream is given. Calling this again
    replaces the handler instead of stacking a second one.
    """

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Devin polling makes one request every few seconds; per-request urllib3 lines drown a run.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.WARNING))

"""One-JSON-object-per-line log formatting, enabled by ``API_STRUCTURED_LOGGING``.

Besides the timestamp, level, logger and message, a record carries the
``request`` mapping set by the access log, the ``event`` mapping set by
the audit handler, and the formatted traceback under ``exc_info``.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime


class JSONFormatter(logging.Formatter):
    context_fields = ("request", "event")

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(
            (field, getattr(record, field))
            for field in self.context_fields
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            line["exc_info"] = self.formatException(record.exc_info)
        # json.dumps escapes newlines inside strings, so each record stays on one line.
        return json.dumps(line, default=str, ensure_ascii=False)

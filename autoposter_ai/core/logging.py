"""Centralized logging configuration.

Gateway code passes request context through ``extra=`` (provider, capability,
task_id, user_id); the JSON formatter lifts those into top-level fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from autoposter_ai.core.config import settings

CONTEXT_FIELDS = ("provider", "capability", "task_id", "user_id")

NOISY_LOGGERS = ("httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with gateway context fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure the root logger; arguments override LOG_LEVEL / LOG_JSON."""
    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    use_json = settings.log_json if json_logs is None else json_logs

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    root.addHandler(handler)

    # HTTP client chatter would log provider URLs
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

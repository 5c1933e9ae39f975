import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flowcore.config import settings

ROOT_LOGGER_NAME = "flowcore"

# Execution log levels -> stdlib levels
EXECUTION_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

class JSONFormatter(logging.Formatter):
    """One JSON object per line; run identifiers passed via ``extra_fields`` become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "extra_fields", None)
        if fields:
            log_data.update({k: v for k, v in fields.items() if v is not None})
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str, ensure_ascii=False)

def run_fields(execution_id: str, workflow_id: Optional[str] = None, node_id: Optional[str] = None) -> Dict[str, Any]:
    """``extra=`` payload that tags a record with the run it belongs to."""
    return {"extra_fields": {"execution_id": execution_id, "workflow_id": workflow_id, "node_id": node_id}}

def setup_logger(name: str = ROOT_LOGGER_NAME, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level or settings.LOG_LEVEL)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    return logger

def get_logger(name: str) -> logging.Logger:
    """Child logger of the flowcore logger, e.g. ``get_logger("engine")``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

logger = setup_logger()

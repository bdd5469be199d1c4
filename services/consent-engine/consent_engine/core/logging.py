from __future__ import annotations
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from consent_engine.core.correlation import get_correlation_id, get_consent_id

# Extra attributes copied from the LogRecord when callers pass them via `extra=`
_EXTRA_KEYS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "status",
    "previous_status",
    "rejected_by",
    "reason",
    "attempt",
)

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            payload["correlation_id"] = cid
        consent_id = getattr(record, "consent_id", None) or get_consent_id()
        if consent_id:
            payload["consent_id"] = consent_id
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

def setup_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    # Replace default handlers (uvicorn's included) with ours
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

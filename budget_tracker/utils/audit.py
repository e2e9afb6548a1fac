import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

_logger = logging.getLogger("audit")


def audit(event: str, **fields: Any) -> None:
    """Emit a minimally structured audit log as a single JSON line."""
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    if fields:
        payload.update(fields)
    try:
        _logger.info(json.dumps(payload, ensure_ascii=False, default=str))
    except (TypeError, ValueError):
        # Fallback to plain message if JSON logging fails
        _logger.info(f"AUDIT {event} fields={fields}")

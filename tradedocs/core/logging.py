"""
Loguru configuration.

Two streams leave the process:
- the operational log on stderr (optionally serialized as JSON)
- the oracle audit trail, records bound with ``audit=True``, written as
  JSONL when AUDIT_LOG_PATH is set

The most recent audit records are also kept in memory by an AuditTrail so
the API can list them.
"""

import sys
import threading
from collections import deque

from loguru import logger

from .config import Settings, settings as default_settings

_configured = False


def _is_audit(record) -> bool:
    return bool(record["extra"].get("audit"))


def setup_logging(config: Settings | None = None, force: bool = False):
    """Configure loguru sinks once per process and return the logger."""
    global _configured
    if _configured and not force:
        return logger

    config = config or default_settings
    logger.remove()
    logger.add(
        sys.stderr,
        level=config.log_level.upper(),
        serialize=config.log_json,
        backtrace=False,
        diagnose=False,
    )

    if config.audit_log_path:
        logger.add(
            config.audit_log_path,
            level="DEBUG",
            serialize=True,
            filter=_is_audit,
            enqueue=True,
        )

    _configured = True
    logger.info(
        "Logging configured",
        level=config.log_level,
        json=config.log_json,
        audit_log=config.audit_log_path or "disabled",
    )
    return logger


def audit_logger():
    """Logger whose records are routed to the audit sink."""
    return logger.bind(audit=True)


class AuditTrail:
    """
    Bounded in-memory copy of the oracle audit records.

    Usage:
        trail = AuditTrail(maxlen=200)
        sink_id = trail.install()
        ...
        trail.recent(limit=20)
        logger.remove(sink_id)
    """

    def __init__(self, maxlen: int = 200):
        self._records = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def sink(self, message) -> None:
        record = message.record
        entry = {
            "timestamp": record["time"].isoformat(),
            "event": record["message"],
            **{key: value for key, value in record["extra"].items() if key != "audit"},
        }
        with self._lock:
            self._records.append(entry)

    def install(self) -> int:
        """Attach the trail to loguru; returns the sink id for logger.remove()."""
        return logger.add(self.sink, level="DEBUG", filter=_is_audit)

    def recent(self, limit: int | None = None) -> list[dict]:
        """Newest first."""
        with self._lock:
            records = list(reversed(self._records))
        return records if limit is None else records[:limit]

    def __len__(self) -> int:
        return len(self._records)

"""Single-line JSON telemetry and best-effort persistence helpers.

Neither helper ever raises to its caller: observability must not degrade the redirect path.
"""
from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any

from prometheus_client import Counter

from linkpeek.infrastructure import db

from linkpeek.infrastructure.metrics import registry

BEST_EFFORT_WRITE_FAILURES = Counter('best_effort_write_failures_total', 'Swallowed persistence failures', ['table'], registry=registry)

logger = logging.getLogger(__name__)
app_logger = logging.getLogger("app")


def log_event(event: str, **context: Any) -> None:
    """Emit ``{"timestamp", "event", **context}`` as one JSON line on the ``app`` logger."""
    try:
        payload = {"timestamp": datetime.utcnow().isoformat() + "Z", "event": event}
        payload.update(context)
        app_logger.info(json.dumps(payload, default=str, separators=(",", ":")))
    except Exception:
        pass


def record_best_effort(row: Any) -> bool:
    """Insert one ORM row in its own session. Returns False instead of raising."""
    session = None
    try:
        session = db.new_session()
        session.add(row)
        session.commit()
        return True
    except Exception as err:
        if session is not None:
            try:
                session.rollback()
            except Exception:
                pass
        try:
            BEST_EFFORT_WRITE_FAILURES.labels(getattr(row, "__tablename__", "unknown")).inc()
            logger.warning("best-effort write failed for %s: %s", getattr(row, "__tablename__", "?"), err)
        except Exception:
            pass
        return False
    finally:
        if session is not None:
            session.close()

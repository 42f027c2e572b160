"""Incident detection over the trailing window of redirect records.

Per (platform, country, device) tuple: Observing -> Open -> Resolved. One snapshot of the
window feeds both the detection pass and the auto-resolve pass.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import redis
from redis.exceptions import LockError
from redis.lock import Lock
from celery import shared_task
from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.orm import Session

from linkpeek.config import get_settings, severity_thresholds, Settings
from linkpeek.infrastructure import db
from linkpeek.infrastructure.metrics import registry
from linkpeek.models.tables import Incident, Link, RedirectRecord

logger = logging.getLogger(__name__)

INCIDENTS_OPENED = Counter('incidents_opened_total', 'Incidents opened', ['severity'], registry=registry)
INCIDENTS_ESCALATED = Counter('incidents_escalated_total', 'Open incidents re-detected after the dedup window', ['severity'], registry=registry)
INCIDENTS_RESOLVED = Counter('incidents_resolved_total', 'Incidents auto-resolved', registry=registry)
INCIDENT_DETECTION_ERRORS = Counter('incident_detection_errors_total', 'Per-tuple failures during incident detection', ['stage'], registry=registry)

LOCK_KEY = "lock:incident-detector"
SEVERITY_ORDER = ("critical", "high", "medium", "low")

Tuple3 = tuple[str, str, str]


@dataclass
class GroupStats:
    total: int = 0
    failures: int = 0
    owners: set[str] = field(default_factory=set)

    @property
    def error_rate(self) -> float:
        return (self.failures / self.total) * 100 if self.total else 0.0


def classify_severity(error_rate: float, thresholds: dict[str, float]) -> str | None:
    """Highest matching threshold wins; below the lowest there is no incident."""
    for name in SEVERITY_ORDER:
        if error_rate >= thresholds[name]:
            return name
    return None


def tuple_key(platform: str | None, country: str | None, device: str | None) -> Tuple3:
    return (platform or "unknown", country or "unknown", device or "unknown")


def snapshot_window(session: Session, since: datetime) -> dict[Tuple3, GroupStats]:
    q = (
        select(RedirectRecord.platform, RedirectRecord.country, RedirectRecord.device, RedirectRecord.success, Link.user_id)
        .outerjoin(Link, Link.id == RedirectRecord.link_id)
        .where(RedirectRecord.ts >= since)
    )
    groups: dict[Tuple3, GroupStats] = {}
    for platform, country, device, success, owner in session.execute(q):
        stats = groups.setdefault(tuple_key(platform, country, device), GroupStats())
        stats.total += 1
        if not success:
            stats.failures += 1
        if owner:
            stats.owners.add(owner)
    return groups


def _open_incident(session: Session, key: Tuple3) -> Incident | None:
    platform, country, device = key
    q = (
        select(Incident)
        .where(Incident.platform == platform, Incident.country == country, Incident.device == device, Incident.resolved_at.is_(None))
        .order_by(Incident.detected_at.desc())
        .limit(1)
    )
    return session.execute(q).scalars().first()


def _last_detected(incident: Incident) -> datetime:
    raw = (incident.details or {}).get("last_detected_at")
    if raw:
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            pass
    return incident.detected_at


def _metadata(stats: GroupStats, s: Settings, thresholds: dict[str, float], now: datetime, history: list | None = None) -> dict:
    return {
        "failures": stats.failures,
        "detectionWindow": f"{s.incident_window_minutes}min",
        "thresholds": thresholds,
        "last_detected_at": now.isoformat(),
        "history": history or [],
    }


def detect_for_group(session: Session, key: Tuple3, stats: GroupStats, now: datetime, s: Settings, thresholds: dict[str, float]) -> str:
    """Returns one of: skipped, below_threshold, opened, suppressed, escalated."""
    if stats.total < s.incident_min_sample_size:
        return "skipped"
    rate = stats.error_rate
    severity = classify_severity(rate, thresholds)
    if severity is None:
        return "below_threshold"
    existing = _open_incident(session, key)
    if existing is not None:
        if _last_detected(existing) >= now - timedelta(minutes=s.incident_dedup_minutes):
            return "suppressed"
        # Stale open incident: refresh it in place so the tuple keeps a single open row.
        previous = existing.details or {}
        history = list(previous.get("history", []))
        history.append({"at": previous.get("last_detected_at", existing.detected_at.isoformat()), "error_rate": existing.error_rate, "severity": existing.severity})
        existing.error_rate = round(rate, 2)
        existing.severity = severity
        existing.sample_size = stats.total
        existing.affected_users = len(stats.owners)
        existing.details = _metadata(stats, s, thresholds, now, history)
        session.commit()
        INCIDENTS_ESCALATED.labels(severity).inc()
        return "escalated"
    platform, country, device = key
    session.add(Incident(
        platform=platform,
        country=country,
        device=device,
        error_rate=round(rate, 2),
        severity=severity,
        sample_size=stats.total,
        affected_users=len(stats.owners),
        detected_at=now,
        details=_metadata(stats, s, thresholds, now),
    ))
    session.commit()
    INCIDENTS_OPENED.labels(severity).inc()
    return "opened"


def auto_resolve(session: Session, groups: dict[Tuple3, GroupStats], now: datetime, s: Settings, thresholds: dict[str, float]) -> tuple[int, int]:
    """Resolve open incidents older than the resolve age whose tuple has recovered.

    Uses the same window snapshot as detection, not filtered by sample size.
    Returns (resolved, errors).
    """
    cutoff = now - timedelta(minutes=s.incident_resolve_after_minutes)
    stale = session.execute(
        select(Incident).where(Incident.resolved_at.is_(None), Incident.detected_at < cutoff)
    ).scalars().all()
    resolved = errors = 0
    for incident in stale:
        stats = groups.get((incident.platform, incident.country, incident.device))
        if stats is not None and stats.total and stats.error_rate >= thresholds["low"]:
            continue
        try:
            incident.resolved_at = now
            session.commit()
            resolved += 1
            INCIDENTS_RESOLVED.inc()
        except Exception as e:
            session.rollback()
            errors += 1
            INCIDENT_DETECTION_ERRORS.labels("resolve").inc()
            logger.error(json.dumps({"event": "incident_resolve_failed", "incident_id": incident.id, "detail": str(e)}))
    return resolved, errors


def run_incident_detection(session: Session, now: datetime | None = None, settings: Settings | None = None) -> dict:
    s = settings or get_settings()
    now = now or datetime.utcnow()
    thresholds = severity_thresholds(s)
    groups = snapshot_window(session, now - timedelta(minutes=s.incident_window_minutes))
    summary = {"status": "ok", "analyzed": sum(g.total for g in groups.values()), "groups": len(groups),
               "opened": 0, "escalated": 0, "suppressed": 0, "resolved": 0, "errors": 0}
    for key, stats in groups.items():
        try:
            outcome = detect_for_group(session, key, stats, now, s, thresholds)
        except Exception as e:
            session.rollback()
            summary["errors"] += 1
            INCIDENT_DETECTION_ERRORS.labels("detect").inc()
            logger.error(json.dumps({"event": "incident_detect_failed", "tuple": list(key), "detail": str(e)}))
            continue
        if outcome in ("opened", "escalated", "suppressed"):
            summary[outcome] += 1
    resolved, errors = auto_resolve(session, groups, now, s, thresholds)
    summary["resolved"] = resolved
    summary["errors"] += errors
    logging.getLogger("app").info(json.dumps({"event": "incident_detection_complete", **summary}))
    return summary


def _acquire_lock(ttl_seconds: int) -> tuple[bool | None, Lock | None]:
    """(True, lock) when acquired, (False, None) when held elsewhere, (None, None) when Redis is unreachable.

    The lock carries a per-run token, so a run that outlives the TTL cannot release the next run's lock.
    """
    try:
        r = redis.Redis.from_url(get_settings().redis_url)
        lock = r.lock(LOCK_KEY, timeout=ttl_seconds, blocking=False)
        if lock.acquire():
            return True, lock
        return False, None
    except Exception as e:
        logger.warning("incident detector lock unavailable, running unlocked: %s", e)
        return None, None


@shared_task
def detect_incidents():
    s = get_settings()
    acquired, lock = _acquire_lock(s.incident_window_minutes * 60)
    if acquired is False:
        return {"status": "skipped", "reason": "locked"}
    session: Session = db.new_session()
    try:
        return run_incident_detection(session, datetime.utcnow(), s)
    finally:
        session.close()
        if lock is not None:
            try:
                lock.release()
            except LockError as e:
                logger.warning("incident detector lock expired before release: %s", e)
            except redis.RedisError as e:
                logger.warning("incident detector lock release failed: %s", e)

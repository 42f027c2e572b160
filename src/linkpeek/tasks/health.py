from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from celery import shared_task
from prometheus_client import Counter
from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from linkpeek.config import get_settings, Settings
from linkpeek.infrastructure import db
from linkpeek.infrastructure.metrics import registry
from linkpeek.models.tables import Link, RedirectRecord
from linkpeek.redirect.chain import inspect_redirect_chain
from linkpeek.urls.helpers import detect_in_app_browser_issues, estimate_redirect_performance
from linkpeek.urls.safety import is_url_safe
from linkpeek.urls.validator import validate

logger = logging.getLogger(__name__)

LINK_HEALTH_CHECKS = Counter('link_health_checks_total', 'Link health evaluations', ['status'], registry=registry)
LINK_HEALTH_ERRORS = Counter('link_health_errors_total', 'Link health evaluations that failed', registry=registry)

MIN_SUCCESS_RATE = 90.0


@dataclass
class LinkHealthReport:
    status: str
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    sanitized: str | None = None
    chain_length: int = 1
    success_rate: float | None = None
    avg_load_ms: int | None = None


def redirect_stats(session: Session, link_id: str, since: datetime) -> tuple[int, int, float | None]:
    """(total, successes, mean load time) over redirect records since ``since``."""
    total, successes, avg_load = session.execute(
        select(
            func.count(RedirectRecord.id),
            func.coalesce(func.sum(case((RedirectRecord.success.is_(True), 1), else_=0)), 0),
            func.avg(RedirectRecord.load_time_ms),
        ).where(RedirectRecord.link_id == link_id, RedirectRecord.ts >= since)
    ).one()
    return int(total or 0), int(successes or 0), (float(avg_load) if avg_load is not None else None)


def evaluate_link(session: Session, link: Link, now: datetime, s: Settings, inspect_chain: bool = False) -> LinkHealthReport:
    destination = link.dest_url
    result = validate(destination)
    report = LinkHealthReport(status="healthy", sanitized=result.sanitized if result.is_valid else None)
    report.issues.extend(result.issues)
    report.warnings.extend(result.warnings)
    report.chain_length = result.estimated_hops

    verdict = is_url_safe(destination)
    if not verdict.safe:
        report.issues.append(verdict.reason or "URL failed safety checks")

    report.warnings.extend(detect_in_app_browser_issues(destination))
    perf = estimate_redirect_performance(destination)
    if perf["estimated_time_ms"] > 200:
        report.recommendations.append("Consider a faster or closer destination host")
    if result.estimated_hops > 1:
        report.recommendations.append("Link directly to the final destination to avoid extra redirect hops")

    if inspect_chain and result.is_valid and result.sanitized:
        report.chain_length = max(report.chain_length, len(inspect_redirect_chain(result.sanitized, timeout=s.redirect_chain_timeout_seconds)))

    total, successes, avg_load = redirect_stats(session, link.id, now - timedelta(days=s.health_lookback_days))
    if total:
        report.success_rate = successes / total * 100
        if report.success_rate < MIN_SUCCESS_RATE:
            report.warnings.append(f"Redirect success rate {report.success_rate:.1f}% over the last {s.health_lookback_days} days")
    if avg_load is not None:
        report.avg_load_ms = int(round(avg_load))

    if report.issues:
        report.status = "error"
    elif report.warnings:
        report.status = "warning"
    return report


def apply_report(link: Link, report: LinkHealthReport, now: datetime) -> None:
    link.health_status = report.status
    link.health_checked_at = now
    link.redirect_chain_length = report.chain_length
    if report.sanitized:
        link.sanitized_dest_url = report.sanitized
    if report.avg_load_ms is not None:
        link.avg_redirect_time_ms = report.avg_load_ms


def run_link_health(session: Session, now: datetime | None = None, settings: Settings | None = None, inspect_chain: bool | None = None) -> dict:
    s = settings or get_settings()
    now = now or datetime.utcnow()
    inspect = s.health_inspect_chain if inspect_chain is None else inspect_chain
    link_ids = session.execute(select(Link.id).where(Link.is_active.is_(True))).scalars().all()
    counts = {"healthy": 0, "warning": 0, "error": 0}
    failed = 0
    for link_id in link_ids:
        try:
            link = session.get(Link, link_id)
            if link is None:
                continue
            report = evaluate_link(session, link, now, s, inspect)
            apply_report(link, report, now)
            session.commit()
            counts[report.status] += 1
            LINK_HEALTH_CHECKS.labels(report.status).inc()
        except Exception as e:
            session.rollback()
            failed += 1
            LINK_HEALTH_ERRORS.inc()
            logger.error(json.dumps({"event": "link_health_failed", "link_id": link_id, "detail": str(e)}))
    return {"status": "ok", "checked": sum(counts.values()), "failed": failed, **counts}


@shared_task
def refresh_link_health():
    session: Session = db.new_session()
    try:
        return run_link_health(session)
    finally:
        session.close()

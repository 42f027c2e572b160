from __future__ import annotations
import json
import logging
import time
from datetime import datetime
from typing import Literal
from urllib.parse import urlsplit

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import update
from starlette.concurrency import run_in_threadpool

from linkpeek.config import get_settings
from linkpeek.infrastructure import db
from linkpeek.infrastructure.structured_log import log_event, record_best_effort
from linkpeek.models.tables import Link, RedirectRecord, RecoveryAttempt
from linkpeek.browser.classifier import detect_webview
from linkpeek.redirect.tracker import RedirectTracker
from linkpeek.security.rate_limit import RateLimiter, build_rate_limiter
from linkpeek.urls.helpers import build_url_with_utm
from linkpeek.urls.normalizer import normalize, strip_controls, ENDPOINT_WRAPPER_HOSTS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redirect"])

DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:", "file:")

_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = build_rate_limiter()
    return _limiter


def reset_rate_limiter() -> None:
    global _limiter
    _limiter = None


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def destination_rejection(raw: str, normalized: str) -> str | None:
    """Reason code when a destination must not be navigated to, else None."""
    for candidate in (raw, normalized):
        lowered = strip_controls(candidate or "").value.lower()
        if lowered.startswith(DANGEROUS_SCHEMES):
            return "dangerous_scheme"
    try:
        parts = urlsplit(normalized)
        parts.port
    except ValueError:
        return "malformed_url"
    if parts.scheme.lower() not in ("http", "https"):
        return "invalid_protocol"
    if not parts.hostname:
        return "missing_hostname"
    return None


def link_unavailable(link: Link, now: datetime) -> tuple[int, str, str] | None:
    """(status, message, log event) when an active link must not resolve right now."""
    if link.active_from is not None and link.active_from > now:
        return 404, "Link not yet active", "redirect_not_yet_active"
    if link.active_until is not None and link.active_until < now:
        return 410, "Link expired", "redirect_expired"
    if link.max_clicks and (link.current_clicks or 0) >= link.max_clicks:
        return 410, "Click limit reached", "redirect_click_limit_reached"
    return None


def apply_utm_overrides(destination: str, link: Link) -> str:
    if not (link.utm_source or link.utm_medium or link.utm_campaign):
        return destination
    return build_url_with_utm(destination, link.utm_source, link.utm_medium, link.utm_campaign)


def count_click(link_id: str) -> bool:
    """Bump ``current_clicks`` for one captured click. Returns False instead of raising."""
    session = db.new_session()
    try:
        session.execute(update(Link).where(Link.id == link_id).values(current_clicks=Link.current_clicks + 1))
        session.commit()
        return True
    except Exception as e:
        session.rollback()
        logger.warning("click count not updated for %s: %s", link_id, e)
        return False
    finally:
        session.close()


def _error(status: int, message: str, headers: dict | None = None, **extra) -> JSONResponse:
    body = {"error": message, "success": False}
    body.update(extra)
    return JSONResponse(body, status_code=status, headers=headers)


def _load_link(link_id: str) -> Link | None:
    session = db.new_session()
    try:
        return session.get(Link, link_id)
    finally:
        session.close()


@router.post("/fast-redirect")
async def fast_redirect(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)):
    """Resolve a link id to the URL the client should navigate to.

    RateLimitCheck -> LinkLookup -> UrlNormalize -> UrlSecurityValidate -> Respond.
    Every exit writes exactly one JSON log line; nothing is persisted here.
    """
    started = time.perf_counter()
    settings = get_settings()
    canary = request.headers.get(settings.canary_header, "").lower() == "canary"
    window = settings.rate_limit_window_seconds

    def elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    def rate_limited(tier: str, result, link_id=None) -> JSONResponse:
        request.state.rate_limit_tier = tier
        log_event("redirect_rate_limited", tier=tier, linkId=link_id, retryAfter=result.retry_after, durationMs=elapsed_ms(), canary=canary)
        return _error(429, "Too many requests", headers={"Retry-After": str(result.retry_after)}, retryAfter=result.retry_after)

    ip_check = limiter.hit(f"ip:{client_ip(request)}", settings.redirect_ip_limit, window)
    if not ip_check.allowed:
        return rate_limited("ip", ip_check)

    try:
        body = json.loads(await request.body() or b"null")
    except ValueError:
        body = None
    link_id = body.get("linkId") if isinstance(body, dict) else None
    if not isinstance(link_id, str) or not link_id:
        log_event("redirect_bad_request", durationMs=elapsed_ms(), canary=canary)
        return _error(400, "linkId is required")

    link_check = limiter.hit(f"link:{link_id}", settings.redirect_link_limit, window)
    if not link_check.allowed:
        return rate_limited("link", link_check, link_id)

    try:
        link = await run_in_threadpool(_load_link, link_id)
    except Exception as e:
        log_event("redirect_error", linkId=link_id, stage="link_lookup", detail=str(e), durationMs=elapsed_ms(), canary=canary)
        return _error(500, "Internal server error")
    if link is None or not link.is_active:
        log_event("redirect_not_found", linkId=link_id, durationMs=elapsed_ms(), canary=canary)
        return _error(404, "Link not found or inactive")

    unavailable = link_unavailable(link, datetime.utcnow())
    if unavailable is not None:
        status, message, event = unavailable
        log_event(event, linkId=link_id, durationMs=elapsed_ms(), canary=canary)
        return _error(status, message)

    raw_destination = link.sanitized_dest_url or link.dest_url or ""
    tracker = RedirectTracker(raw_destination)
    destination = normalize(raw_destination, ENDPOINT_WRAPPER_HOSTS)
    if destination != raw_destination:
        tracker.add_step(destination, "normalize")

    reason = destination_rejection(raw_destination, destination)
    if reason is not None:
        tracker.set_drop_off("url_validation")
        log_event("redirect_invalid_destination", linkId=link_id, reason=reason, durationMs=elapsed_ms(), canary=canary)
        return _error(400, "Invalid destination URL", reason=reason, redirect=settings.link_error_path)

    with_utm = apply_utm_overrides(destination, link)
    if with_utm != destination:
        destination = with_utm
        tracker.add_step(destination, "utm")

    tracker.set_success()
    browser = detect_webview(body.get("userAgent") if isinstance(body.get("userAgent"), str) else None)
    took = elapsed_ms()
    log_event(
        "redirect_success",
        linkId=link_id,
        durationMs=took,
        canary=canary,
        inAppBrowser=browser.is_in_app_browser,
        browser=browser.name,
        steps=len(tracker.tracking().steps),
    )
    return JSONResponse({"url": destination, "success": True}, headers={"X-Response-Time": f"{took}ms"})


class ClickCapture(BaseModel):
    link_id: str = Field(..., alias="linkId", min_length=1)
    success: bool = True
    load_time_ms: int | None = Field(None, alias="loadTimeMs", ge=0)
    user_agent: str | None = Field(None, alias="userAgent")
    referrer: str | None = None
    country: str | None = Field(None, max_length=8)
    recovery_strategy: str | None = Field(None, alias="recoveryStrategy")
    final_url: str | None = Field(None, alias="finalUrl")
    drop_off_stage: str | None = Field(None, alias="dropOffStage")
    steps: list[dict] | None = None


@router.post("/redirects", status_code=202)
def capture_redirect(body: ClickCapture):
    """Append one redirect outcome. A failed insert is reported, never raised."""
    browser = detect_webview(body.user_agent)
    row = RedirectRecord(
        link_id=body.link_id,
        success=body.success,
        in_app_browser_detected=browser.is_in_app_browser,
        load_time_ms=body.load_time_ms,
        platform=browser.platform,
        browser=browser.name,
        device=browser.device,
        country=body.country,
        user_agent=body.user_agent,
        referrer=body.referrer,
        recovery_strategy_used=body.recovery_strategy,
        final_url=body.final_url,
        drop_off_stage=body.drop_off_stage,
        redirect_steps=body.steps,
    )
    recorded = record_best_effort(row)
    if recorded and body.success:
        count_click(body.link_id)
    log_event("redirect_captured", linkId=body.link_id, success=body.success, recorded=recorded, platform=browser.platform)
    return {"recorded": recorded}


class RecoveryAttemptIn(BaseModel):
    link_id: str = Field(..., alias="linkId", min_length=1)
    user_id: str | None = Field(None, alias="userId")
    strategy: Literal["intent_url_android", "clipboard_copy", "manual_instructions"]
    success: bool = False
    platform: str | None = None
    device: str | None = None
    browser: str | None = None


@router.post("/recovery/attempts", status_code=202)
def log_recovery_attempt(body: RecoveryAttemptIn):
    row = RecoveryAttempt(
        link_id=body.link_id,
        user_id=body.user_id,
        strategy=body.strategy,
        success=body.success,
        platform=body.platform,
        device=body.device,
        browser=body.browser,
    )
    return {"recorded": record_best_effort(row)}

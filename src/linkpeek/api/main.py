from __future__ import annotations
import json
import logging
import time
import uuid
from typing import Literal

from fastapi import FastAPI, Depends, Request, Response, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session
from datetime import datetime

from linkpeek.config import get_settings
from linkpeek.infrastructure.db import get_db, healthcheck
from linkpeek.infrastructure.metrics import registry, REQUESTS, LATENCY, RATE_LIMIT_HITS
from linkpeek.models.tables import Incident, Link
from linkpeek.api.redirect import router as redirect_router

app = FastAPI(title="linkpeek redirect API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(redirect_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    cid = getattr(request.state, "correlation_id", "n/a")
    logging.getLogger("app").error(json.dumps({
        "event": "error",
        "path": request.url.path,
        "detail": str(exc),
        "correlation_id": cid,
        "type": exc.__class__.__name__,
    }))
    return Response(content=json.dumps({"error": "internal_error", "success": False, "correlation_id": cid}), media_type="application/json", status_code=500)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    duration = time.time() - start
    ep = request.url.path
    try:
        REQUESTS.labels(endpoint=ep).inc()
        LATENCY.labels(endpoint=ep).observe(duration)
        tier = getattr(request.state, "rate_limit_tier", None)
        if tier:
            RATE_LIMIT_HITS.labels(tier).inc()
    except Exception:
        pass
    response.headers['X-Correlation-ID'] = correlation_id
    return response


@app.on_event("startup")
def startup():
    settings = get_settings()
    # Configure structured logger once
    logger = logging.getLogger("app")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(message)s')  # already JSON
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))


@app.get("/health")
def health():
    try:
        ok = healthcheck()
    except Exception:
        ok = False
    return {"db": ok, "status": "ok" if ok else "degraded"}


@app.get("/metrics")
def metrics():
    data = generate_latest(registry)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


class IncidentOut(BaseModel):
    id: int
    platform: str
    country: str
    device: str
    error_rate: float
    severity: str
    sample_size: int
    affected_users: int
    detected_at: datetime
    resolved_at: datetime | None
    metadata: dict | None

    @classmethod
    def from_row(cls, row: Incident) -> "IncidentOut":
        return cls(
            id=row.id,
            platform=row.platform,
            country=row.country,
            device=row.device,
            error_rate=row.error_rate,
            severity=row.severity,
            sample_size=row.sample_size,
            affected_users=row.affected_users,
            detected_at=row.detected_at,
            resolved_at=row.resolved_at,
            metadata=row.details,
        )


@app.get("/incidents", response_model=list[IncidentOut])
def list_incidents(
    status: Literal["open", "resolved", "all"] = Query("open"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    q = select(Incident)
    if status == "open":
        q = q.where(Incident.resolved_at.is_(None))
    elif status == "resolved":
        q = q.where(Incident.resolved_at.is_not(None))
    rows = db.execute(q.order_by(Incident.detected_at.desc(), Incident.id.desc()).limit(limit)).scalars().all()
    return [IncidentOut.from_row(r) for r in rows]


class LinkHealthOut(BaseModel):
    link_id: str
    is_active: bool
    health_status: str
    health_checked_at: datetime | None
    avg_redirect_time_ms: int | None
    redirect_chain_length: int | None


@app.get("/links/{link_id}/health", response_model=LinkHealthOut)
def link_health(link_id: str, db: Session = Depends(get_db)):
    link = db.get(Link, link_id)
    if link is None:
        raise HTTPException(status_code=404, detail="link not found")
    return LinkHealthOut(
        link_id=link.id,
        is_active=link.is_active,
        health_status=link.health_status or "unknown",
        health_checked_at=link.health_checked_at,
        avg_redirect_time_ms=link.avg_redirect_time_ms,
        redirect_chain_length=link.redirect_chain_length,
    )

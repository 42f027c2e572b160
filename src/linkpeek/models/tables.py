from __future__ import annotations
from datetime import datetime
import uuid
from sqlalchemy import String, Integer, DateTime, JSON, ForeignKey, Float, Boolean, Index, Text
from sqlalchemy.orm import Mapped, mapped_column
from linkpeek.infrastructure.db import Base


HEALTH_STATUSES = ("healthy", "warning", "error", "unknown")
RECOVERY_STRATEGIES = ("intent_url_android", "clipboard_copy", "manual_instructions")
SEVERITIES = ("low", "medium", "high", "critical")


class Link(Base):
    """User-owned destination record.

    Outside of user edits only two writers touch a link: the link health task (health fields)
    and click capture (``current_clicks``).
    """
    __tablename__ = "links"
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    dest_url: Mapped[str] = mapped_column(Text)
    sanitized_dest_url: Mapped[str | None] = mapped_column(Text, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    active_from: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    active_until: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    max_clicks: Mapped[int | None] = mapped_column(Integer, default=None)  # None or 0: unlimited
    current_clicks: Mapped[int] = mapped_column(Integer, default=0)
    utm_source: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_medium: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), default=None)
    health_status: Mapped[str] = mapped_column(String(16), default="unknown", index=True)  # healthy|warning|error|unknown
    health_checked_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    avg_redirect_time_ms: Mapped[int | None] = mapped_column(Integer, default=None)
    redirect_chain_length: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RedirectRecord(Base):
    """One row per click-to-navigation attempt. Append-only."""
    __tablename__ = "redirects"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[str] = mapped_column(String(64), ForeignKey("links.id"), index=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    in_app_browser_detected: Mapped[bool] = mapped_column(Boolean, default=False)
    load_time_ms: Mapped[int | None] = mapped_column(Integer, default=None)
    platform: Mapped[str | None] = mapped_column(String(32), default=None)
    browser: Mapped[str | None] = mapped_column(String(64), default=None)
    device: Mapped[str | None] = mapped_column(String(32), default=None)
    country: Mapped[str | None] = mapped_column(String(8), default=None)
    user_agent: Mapped[str | None] = mapped_column(Text, default=None)
    referrer: Mapped[str | None] = mapped_column(Text, default=None)
    recovery_strategy_used: Mapped[str | None] = mapped_column(String(32), default=None)
    final_url: Mapped[str | None] = mapped_column(Text, default=None)
    drop_off_stage: Mapped[str | None] = mapped_column(String(64), default=None)
    redirect_steps: Mapped[list | None] = mapped_column(JSON, default=None)

    __table_args__ = (
        Index("ix_redirects_link_ts", "link_id", "ts"),
        # incident detector scans the trailing window grouped by tuple
        Index("ix_redirects_ts_tuple", "ts", "platform", "country", "device"),
    )


class RecoveryAttempt(Base):
    """Client-side recovery action. Append-only.

    strategy: intent_url_android|clipboard_copy|manual_instructions
    """
    __tablename__ = "recovery_attempts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), index=True, default=None)
    strategy: Mapped[str] = mapped_column(String(32), index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    platform: Mapped[str | None] = mapped_column(String(32), default=None)
    device: Mapped[str | None] = mapped_column(String(32), default=None)
    browser: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Incident(Base):
    """Detected reliability degradation for a (platform, country, device) tuple.

    severity: low|medium|high|critical
    At most one row per tuple has resolved_at IS NULL.
    """
    __tablename__ = "incidents"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    platform: Mapped[str] = mapped_column(String(32), index=True)
    country: Mapped[str] = mapped_column(String(8), index=True)
    device: Mapped[str] = mapped_column(String(32), index=True)
    error_rate: Mapped[float] = mapped_column(Float)
    severity: Mapped[str] = mapped_column(String(16), index=True)
    sample_size: Mapped[int] = mapped_column(Integer)
    affected_users: Mapped[int] = mapped_column(Integer, default=0)
    detected_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, default=None, index=True)
    details: Mapped[dict | None] = mapped_column("metadata", JSON, default=None)
    __table_args__ = (
        Index("ix_incident_tuple_open", "platform", "country", "device", "resolved_at"),
    )

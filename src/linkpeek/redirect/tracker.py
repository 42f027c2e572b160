from __future__ import annotations
import time
from dataclasses import dataclass, field, asdict


@dataclass
class RedirectStep:
    url: str
    type: str  # initial|server|client|meta|js|normalize|unwrap
    timestamp_ms: int
    status: int | None = None
    duration_ms: int | None = None


@dataclass
class RedirectTracking:
    start_ms: int
    steps: list[RedirectStep] = field(default_factory=list)
    total_ms: int = 0
    final_url: str = ""
    drop_off_stage: str | None = None
    success: bool = False


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class RedirectTracker:
    """Records the hops a single redirect passes through."""

    def __init__(self, initial_url: str, clock=_now_ms):
        self._clock = clock
        now = clock()
        self._tracking = RedirectTracking(start_ms=now, steps=[RedirectStep(initial_url, "initial", now)], final_url=initial_url)

    def add_step(self, url: str, type: str, status: int | None = None) -> None:
        now = self._clock()
        last = self._tracking.steps[-1]
        self._tracking.steps.append(RedirectStep(url, type, now, status, now - last.timestamp_ms))
        self._tracking.final_url = url

    def set_drop_off(self, stage: str) -> None:
        self._tracking.drop_off_stage = stage
        self._tracking.success = False

    def set_success(self) -> None:
        self._tracking.success = True
        self._tracking.total_ms = self._clock() - self._tracking.start_ms

    def tracking(self) -> RedirectTracking:
        t = self._tracking
        return RedirectTracking(t.start_ms, list(t.steps), self._clock() - t.start_ms, t.final_url, t.drop_off_stage, t.success)

    def steps_as_dicts(self) -> list[dict]:
        return [asdict(s) for s in self._tracking.steps]

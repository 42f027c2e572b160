"""Visitor-side recovery after a failed or risky redirect.

The browser is reached through ``BrowserEnvironment`` so the decision logic runs the same in a
real shell (e.g. a WebView bridge) and in tests. Attempt logging is fire-and-forget: recorder
failures are swallowed and never change the outcome.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from linkpeek.redirect.strategy import android_intent_url

logger = logging.getLogger(__name__)


class BrowserEnvironment(Protocol):
    def location_replace(self, url: str) -> None: ...

    def clipboard_write_text(self, text: str) -> None:
        """Clipboard API write; raises when the API is missing or permission is denied."""
        ...

    def exec_command_copy(self, text: str) -> bool:
        """Hidden-textarea + execCommand('copy') fallback."""
        ...


@dataclass(frozen=True)
class AttemptLog:
    link_id: str
    user_id: str | None
    strategy: str
    success: bool
    platform: str | None
    device: str | None
    browser: str | None

    def as_payload(self) -> dict:
        return {
            "linkId": self.link_id,
            "userId": self.user_id,
            "strategy": self.strategy,
            "success": self.success,
            "platform": self.platform,
            "device": self.device,
            "browser": self.browser,
        }


class AttemptRecorder(Protocol):
    def record(self, attempt: AttemptLog) -> None: ...


class HttpAttemptRecorder:
    """Posts attempts to ``POST /recovery/attempts``."""

    def __init__(self, base_url: str, timeout: float = 3.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def record(self, attempt: AttemptLog) -> None:
        resp = self.session.post(f"{self.base_url}/recovery/attempts", json=attempt.as_payload(), timeout=self.timeout)
        resp.raise_for_status()


class DatabaseAttemptRecorder:
    def record(self, attempt: AttemptLog) -> None:
        from linkpeek.infrastructure.structured_log import record_best_effort
        from linkpeek.models.tables import RecoveryAttempt

        record_best_effort(RecoveryAttempt(
            link_id=attempt.link_id,
            user_id=attempt.user_id,
            strategy=attempt.strategy,
            success=attempt.success,
            platform=attempt.platform,
            device=attempt.device,
            browser=attempt.browser,
        ))


MANUAL_INSTRUCTIONS: dict[tuple[str, str], list[str]] = {
    ("ios", "Instagram"): [
        "Tap the ... menu in the top right corner",
        "Choose \"Open in external browser\"",
    ],
    ("ios", "Facebook"): [
        "Tap the ... menu in the bottom right corner",
        "Choose \"Open in Safari\"",
    ],
    ("ios", "TikTok"): [
        "Tap the ... menu in the top right corner",
        "Choose \"Open in browser\"",
    ],
    ("android", "Instagram"): [
        "Tap the ⋮ menu in the top right corner",
        "Choose \"Open in Chrome\"",
    ],
    ("android", "Facebook"): [
        "Tap the ⋮ menu in the top right corner",
        "Choose \"Open in external browser\"",
    ],
    ("android", "TikTok"): [
        "Tap the ⋮ menu in the top right corner",
        "Choose \"Open in browser\"",
    ],
}
GENERIC_INSTRUCTIONS = {
    "ios": ["The link has been copied", "Open Safari and paste it into the address bar"],
    "android": ["The link has been copied", "Open Chrome and paste it into the address bar"],
    "desktop": ["The link has been copied", "Paste it into a new browser tab"],
}
DEFAULT_INSTRUCTIONS = ["The link has been copied", "Open your browser and paste it into the address bar"]


def _app_name(browser: str | None) -> str:
    # "Instagram In-App" -> "Instagram"
    return (browser or "").replace(" In-App", "").strip()


def manual_instructions(platform: str | None, browser: str | None) -> list[str]:
    """Static per-device, per-app steps shown when automatic recovery did not apply."""
    key = ((platform or "").lower(), _app_name(browser))
    if key in MANUAL_INSTRUCTIONS:
        return list(MANUAL_INSTRUCTIONS[key])
    return list(GENERIC_INSTRUCTIONS.get(key[0], DEFAULT_INSTRUCTIONS))


class RecoveryClient:
    def __init__(
        self,
        link_id: str,
        destination: str,
        env: BrowserEnvironment,
        recorder: AttemptRecorder,
        user_id: str | None = None,
        platform: str | None = None,
        device: str | None = None,
        browser: str | None = None,
    ):
        self.link_id = link_id
        self.destination = destination
        self.env = env
        self.recorder = recorder
        self.user_id = user_id
        self.platform = (platform or "unknown").lower()
        self.device = device
        self.browser = browser

    def _log(self, strategy: str, success: bool) -> None:
        try:
            self.recorder.record(AttemptLog(self.link_id, self.user_id, strategy, success, self.platform, self.device, self.browser))
        except Exception as e:
            logger.debug("recovery attempt not recorded (%s): %s", strategy, e)

    def _try_intent(self) -> bool:
        # Construction succeeding is the only signal; browsers do not report whether
        # the intent was honoured.
        try:
            intent = android_intent_url(self.destination)
        except ValueError:
            return False
        try:
            self.env.location_replace(intent)
        except Exception as e:
            logger.debug("intent navigation raised: %s", e)
        return True

    def _try_clipboard(self) -> bool:
        try:
            self.env.clipboard_write_text(self.destination)
            return True
        except Exception:
            pass
        try:
            return bool(self.env.exec_command_copy(self.destination))
        except Exception:
            return False

    def attempt_recovery(self) -> bool:
        """True when navigation likely proceeds without the visitor doing anything."""
        intent_ok = False
        if self.platform == "android":
            intent_ok = self._try_intent()
            self._log("intent_url_android", intent_ok)
        copied = self._try_clipboard()
        self._log("clipboard_copy", copied)
        return intent_ok

    def manual_instructions(self) -> list[str]:
        steps = manual_instructions(self.platform, self.browser)
        self._log("manual_instructions", True)
        return steps

from __future__ import annotations
from dataclasses import dataclass

from linkpeek.browser.classifier import BrowserInfo, is_named
from linkpeek.urls.validator import parse_structured

FALLBACK_RISK_THRESHOLD = 70
FALLBACK_CHAIN_LENGTH = 2
HIGH_RISK_APPS = ("Instagram", "TikTok")


@dataclass(frozen=True)
class RecoveryPlan:
    strategy: str  # none|deep_link_ios|fallback_ui|intent_url|clipboard_copy
    confidence: str  # high|medium|low
    instructions: str


def calculate_risk(url: str, browser: BrowserInfo, historical_failure_rate: float | None = None) -> float:
    """Additive redirect risk score clamped to [0, 100]."""
    risk = 0.0
    if browser.is_in_app_browser:
        risk += 30
        if is_named(browser, *HIGH_RISK_APPS):
            risk += 20
    if historical_failure_rate:
        risk += historical_failure_rate * 0.5
    parts = parse_structured(url) if url else None
    if parts is None:
        risk += 20
    else:
        if parts.query and len(parts.query) + 1 > 200:
            risk += 10
        if len(parts.path.split("/")[1:]) > 5:
            risk += 5
    return max(0.0, min(100.0, risk))


def should_use_fallback(browser: BrowserInfo, risk_score: float, chain_length: int) -> bool:
    if risk_score > FALLBACK_RISK_THRESHOLD:
        return True
    if is_named(browser, *HIGH_RISK_APPS):
        return True
    return chain_length > FALLBACK_CHAIN_LENGTH


def get_recovery_strategy(browser: BrowserInfo) -> RecoveryPlan:
    if not browser.is_in_app_browser:
        return RecoveryPlan("none", "high", "Regular browser detected - no recovery needed")
    if browser.platform == "ios":
        if is_named(browser, "Instagram", "Facebook"):
            return RecoveryPlan("deep_link_ios", "medium", "Attempting to open in Safari via deep link")
        return RecoveryPlan("fallback_ui", "high", "Showing fallback UI with copy/open options")
    if browser.platform == "android":
        return RecoveryPlan("intent_url", "high", "Using Android intent URL to open in default browser")
    return RecoveryPlan("clipboard_copy", "low", "Copying URL to clipboard as fallback")


def get_redirect_timeout(browser: BrowserInfo) -> int:
    """Client-side navigation timeout in milliseconds."""
    if browser.is_in_app_browser:
        return 10_000
    if browser.device == "mobile":
        return 7_000
    return 5_000


def android_intent_url(destination: str) -> str:
    parts = parse_structured(destination)
    if parts is None:
        raise ValueError(f"cannot build intent url for {destination!r}")
    target = parts.netloc + parts.path
    if parts.query:
        target += "?" + parts.query
    return f"intent://{target}#Intent;scheme=https;action=android.intent.action.VIEW;end"


def build_fallback_url(destination: str, browser: BrowserInfo) -> str:
    if browser.platform == "ios":
        return f"x-safari-{destination}"
    if browser.platform == "android":
        try:
            return android_intent_url(destination)
        except ValueError:
            return destination
    return destination

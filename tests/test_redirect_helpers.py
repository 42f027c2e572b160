from unittest.mock import Mock, patch

import pytest
import requests

from linkpeek.browser.classifier import BrowserInfo
from linkpeek.redirect.strategy import (
    calculate_risk,
    should_use_fallback,
    get_recovery_strategy,
    get_redirect_timeout,
    build_fallback_url,
    android_intent_url,
)
from linkpeek.redirect.tracker import RedirectTracker
from linkpeek.redirect.chain import inspect_redirect_chain

DESKTOP_CHROME = BrowserInfo(name="Chrome", platform="desktop", device="desktop", engine="Blink")
IOS_INSTAGRAM = BrowserInfo(name="Instagram In-App", is_in_app_browser=True, platform="ios", device="mobile")
IOS_FACEBOOK = BrowserInfo(name="Facebook In-App", is_in_app_browser=True, platform="ios", device="mobile")
IOS_SNAPCHAT = BrowserInfo(name="Snapchat In-App", is_in_app_browser=True, platform="ios", device="mobile")
ANDROID_TIKTOK = BrowserInfo(name="TikTok In-App", is_in_app_browser=True, platform="android", device="mobile")
DESKTOP_LINKEDIN = BrowserInfo(name="LinkedIn In-App", is_in_app_browser=True, platform="desktop", device="desktop")
MOBILE_SAFARI = BrowserInfo(name="Safari", platform="ios", device="mobile")


class TestCalculateRisk:
    def test_regular_browser_simple_url(self):
        assert calculate_risk("https://example.com/page", DESKTOP_CHROME) == 0

    def test_in_app_and_high_risk_app(self):
        assert calculate_risk("https://example.com", IOS_SNAPCHAT) == 30
        assert calculate_risk("https://example.com", IOS_INSTAGRAM) == 50

    def test_url_shape(self):
        assert calculate_risk("https://example.com/?q=" + "x" * 250, DESKTOP_CHROME) == 10
        assert calculate_risk("https://example.com/a/b/c/d/e/f", DESKTOP_CHROME) == 5
        assert calculate_risk("https://example.com/a/b/c/d/e", DESKTOP_CHROME) == 0

    def test_unparseable_adds_flat_penalty(self):
        assert calculate_risk("https://example.com:bad", IOS_SNAPCHAT) == 50

    def test_clamped(self):
        assert calculate_risk("not a url", IOS_INSTAGRAM, historical_failure_rate=500) == 100
        assert calculate_risk("https://example.com", DESKTOP_CHROME, historical_failure_rate=-500) == 0

    @pytest.mark.parametrize("browser", [DESKTOP_CHROME, IOS_INSTAGRAM, ANDROID_TIKTOK])
    def test_monotonic_in_failure_rate(self, browser):
        url = "https://example.com/a/b/c/d/e/f?q=" + "y" * 300
        scores = [calculate_risk(url, browser, rate) for rate in (None, 0, 5, 20, 60, 100, 180, 400)]
        assert scores == sorted(scores)
        assert all(0 <= s <= 100 for s in scores)


class TestFallbackAndStrategy:
    def test_should_use_fallback(self):
        assert should_use_fallback(DESKTOP_CHROME, 71, 1)
        assert not should_use_fallback(DESKTOP_CHROME, 70, 1)
        assert should_use_fallback(IOS_INSTAGRAM, 0, 1)
        assert should_use_fallback(ANDROID_TIKTOK, 0, 1)
        assert should_use_fallback(DESKTOP_CHROME, 0, 3)
        assert not should_use_fallback(IOS_SNAPCHAT, 50, 2)

    @pytest.mark.parametrize("browser,strategy,confidence", [
        (DESKTOP_CHROME, "none", "high"),
        (IOS_INSTAGRAM, "deep_link_ios", "medium"),
        (IOS_FACEBOOK, "deep_link_ios", "medium"),
        (IOS_SNAPCHAT, "fallback_ui", "high"),
        (ANDROID_TIKTOK, "intent_url", "high"),
        (DESKTOP_LINKEDIN, "clipboard_copy", "low"),
    ])
    def test_strategy_table(self, browser, strategy, confidence):
        plan = get_recovery_strategy(browser)
        assert (plan.strategy, plan.confidence) == (strategy, confidence)
        assert plan.instructions

    def test_timeouts(self):
        assert get_redirect_timeout(IOS_INSTAGRAM) == 10_000
        assert get_redirect_timeout(MOBILE_SAFARI) == 7_000
        assert get_redirect_timeout(DESKTOP_CHROME) == 5_000

    def test_fallback_urls(self):
        dest = "https://shop.example/sale?x=1"
        assert build_fallback_url(dest, IOS_INSTAGRAM) == "x-safari-https://shop.example/sale?x=1"
        assert build_fallback_url(dest, ANDROID_TIKTOK) == "intent://shop.example/sale?x=1#Intent;scheme=https;action=android.intent.action.VIEW;end"
        assert build_fallback_url(dest, DESKTOP_CHROME) == dest

    def test_intent_url_requires_structured_url(self):
        with pytest.raises(ValueError):
            android_intent_url("not a url")


class TestRedirectTracker:
    def test_steps_and_timing(self):
        ticks = iter([1000, 1040, 1100, 1250])
        tracker = RedirectTracker("https://l.instagram.com/?u=x", clock=lambda: next(ticks))
        tracker.add_step("https://example.com", "unwrap")
        tracker.set_success()
        t = tracker.tracking()
        assert [s.type for s in t.steps] == ["initial", "unwrap"]
        assert t.steps[1].duration_ms == 40
        assert t.final_url == "https://example.com"
        assert t.success
        assert t.total_ms == 250

    def test_drop_off(self):
        tracker = RedirectTracker("https://example.com")
        tracker.set_drop_off("url_validation")
        t = tracker.tracking()
        assert not t.success
        assert t.drop_off_stage == "url_validation"
        assert tracker.steps_as_dicts()[0]["url"] == "https://example.com"


class TestInspectRedirectChain:
    def test_followed_redirect(self):
        with patch("linkpeek.redirect.chain.requests.head", return_value=Mock(url="https://example.com/final")) as head:
            assert inspect_redirect_chain("https://bit.ly/x") == ["https://bit.ly/x", "https://example.com/final"]
        head.assert_called_once_with("https://bit.ly/x", allow_redirects=True, timeout=3.0)

    def test_no_redirect(self):
        with patch("linkpeek.redirect.chain.requests.head", return_value=Mock(url="https://example.com/")):
            assert inspect_redirect_chain("https://example.com/") == ["https://example.com/"]

    def test_timeout_is_soft_failure(self):
        with patch("linkpeek.redirect.chain.requests.head", side_effect=requests.Timeout("slow")):
            assert inspect_redirect_chain("https://example.com/") == ["https://example.com/"]

    def test_custom_session(self):
        session = Mock()
        session.head.side_effect = requests.ConnectionError("down")
        assert inspect_redirect_chain("https://example.com/", timeout=1, session=session) == ["https://example.com/"]

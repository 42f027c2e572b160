"""User-agent classification with emphasis on in-app (WebView) browsers.

All matching is case-insensitive and first-match-wins over ordered ``(pattern, result)``
tables; table order is the tie-break when several tokens co-occur in one user agent.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, asdict

IN_APP_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"fbav|fb_iab|fbios|fb4a"), "Facebook"),
    (re.compile(r"instagram"), "Instagram"),
    (re.compile(r"twitter"), "Twitter"),
    (re.compile(r"linkedin"), "LinkedIn"),
    (re.compile(r"snapchat"), "Snapchat"),
    (re.compile(r"tiktok"), "TikTok"),
    (re.compile(r"pinterest"), "Pinterest"),
    (re.compile(r"line/"), "LINE"),
    (re.compile(r"wechat"), "WeChat"),
    (re.compile(r"whatsapp"), "WhatsApp"),
]

# Edge UAs also carry "chrome" and "safari", Chrome UAs carry "safari".
STANDARD_BROWSERS: list[tuple[re.Pattern, str, str]] = [
    (re.compile(r"edg"), "Edge", "Blink"),
    (re.compile(r"chrome"), "Chrome", "Blink"),
    (re.compile(r"safari"), "Safari", "WebKit"),
    (re.compile(r"firefox"), "Firefox", "Gecko"),
    (re.compile(r"opera|opr"), "Opera", "Blink"),
]

VERSION_PATTERNS: dict[str, re.Pattern] = {
    "Edge": re.compile(r"edg(?:e|a|ios)?/([\d.]+)"),
    "Chrome": re.compile(r"chrome/([\d.]+)"),
    "Safari": re.compile(r"version/([\d.]+)"),
    "Firefox": re.compile(r"firefox/([\d.]+)"),
    "Opera": re.compile(r"(?:opr|opera)[/\s]([\d.]+)"),
}

# Lower-confidence signals, consulted only after the named in-app table misses.
EXTRA_WEBVIEW_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"telegram"), "Telegram In-App"),
]
_WV_TOKEN = re.compile(r"\bwv\b")


@dataclass
class BrowserInfo:
    name: str = "Unknown"
    version: str = ""
    is_in_app_browser: bool = False
    platform: str = "unknown"  # ios|android|desktop|unknown
    device: str = "unknown"  # mobile|tablet|desktop|unknown
    engine: str = "unknown"

    def to_dict(self) -> dict:
        return asdict(self)


def _platform(ua: str, info: BrowserInfo) -> None:
    if re.search(r"iphone|ipad|ipod", ua):
        info.platform = "ios"
        info.device = "tablet" if "ipad" in ua else "mobile"
    elif "android" in ua:
        info.platform = "android"
        info.device = "mobile" if "mobile" in ua else "tablet"
    elif re.search(r"windows|mac|linux", ua):
        info.platform = "desktop"
        info.device = "desktop"


def detect_browser(user_agent: str | None) -> BrowserInfo:
    info = BrowserInfo()
    ua = (user_agent or "").lower()
    if not ua:
        return info
    _platform(ua, info)

    for pattern, name in IN_APP_PATTERNS:
        if pattern.search(ua):
            info.is_in_app_browser = True
            info.name = f"{name} In-App"
            return info

    for pattern, name, engine in STANDARD_BROWSERS:
        if pattern.search(ua):
            info.name = name
            info.engine = engine
            break
    version_re = VERSION_PATTERNS.get(info.name)
    if version_re is not None:
        m = version_re.search(ua)
        if m:
            info.version = m.group(1)
    return info


def detect_webview(user_agent: str | None) -> BrowserInfo:
    """detect_browser plus the stricter WebView fallbacks used on the click-capture path."""
    info = detect_browser(user_agent)
    if info.is_in_app_browser:
        return info
    ua = (user_agent or "").lower()
    for pattern, name in EXTRA_WEBVIEW_PATTERNS:
        if pattern.search(ua):
            return _as_webview(info, name)
    if info.platform == "ios" and "webkit" in ua and "safari" not in ua:
        return _as_webview(info, "iOS WebView")
    if info.platform == "android" and _WV_TOKEN.search(ua):
        return _as_webview(info, "Android WebView")
    return info


def _as_webview(info: BrowserInfo, name: str) -> BrowserInfo:
    info.is_in_app_browser = True
    info.name = name
    info.version = ""
    info.engine = "WebKit" if info.platform == "ios" else "Blink" if info.platform == "android" else info.engine
    return info


def is_named(info: BrowserInfo, *names: str) -> bool:
    return any(n in info.name for n in names)

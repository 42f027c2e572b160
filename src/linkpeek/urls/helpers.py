"""UTM and destination helpers used by the link health checker and link editors."""
from __future__ import annotations
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from linkpeek.urls.normalizer import normalize, UTM_KEYS
from linkpeek.urls.validator import parse_structured

TRACKING_PARAMS = ("fbclid", "gclid", "msclkid", "_ga", "_gl", "mc_cid", "mc_eid", "mkt_tok")
DOWNLOAD_EXTENSIONS = ("pdf", "doc", "docx", "zip", "exe", "dmg")
FAR_TLDS = ("cn", "jp", "au", "nz", "za")
CDN_MARKERS = ("cloudfront", "cloudflare", "fastly", "akamai")


def extract_utm_params(url: str) -> dict[str, str]:
    parts = parse_structured(url)
    if parts is None:
        return {}
    found: dict[str, str] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key in UTM_KEYS and key not in found and value:
            found[key] = value
    return found


def _set_params(url: str, updates: dict[str, str]) -> str:
    parts = urlsplit(url)
    pairs = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in updates]
    pairs.extend(updates.items())
    return urlunsplit(parts._replace(query=urlencode(pairs)))


def build_url_with_utm(base_url: str, source: str | None = None, medium: str | None = None, campaign: str | None = None) -> str:
    sanitized = normalize(base_url)
    if parse_structured(sanitized) is None:
        return base_url
    updates = {k: v for k, v in (("utm_source", source), ("utm_medium", medium), ("utm_campaign", campaign)) if v}
    if not updates:
        return sanitized
    return _set_params(sanitized, updates)


def strip_tracking_params(url: str) -> str:
    """Remove click-id params (fbclid, gclid, ...) leaving everything else in order."""
    parts = parse_structured(url)
    if parts is None:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, v in pairs if k.lower() not in TRACKING_PARAMS]
    if len(kept) == len(pairs):
        return url
    return urlunsplit(parts._replace(query=urlencode(kept)))


def get_domain(url: str) -> str | None:
    parts = parse_structured(normalize(url)) if url else None
    return parts.hostname if parts else None


def detect_in_app_browser_issues(url: str) -> list[str]:
    issues: list[str] = []
    raw = (url or "").strip().lower()
    # special schemes are checked before normalization would coerce them to https
    if raw.startswith(("tel:", "mailto:")):
        issues.append("Special protocol may not work in in-app browsers")
        return issues
    parts = parse_structured(normalize(url)) if url else None
    if parts is None:
        issues.append("Unable to analyze URL structure")
        return issues
    last = parts.path.rsplit("/", 1)[-1]
    if "." in last and last.rsplit(".", 1)[-1].lower() in DOWNLOAD_EXTENSIONS:
        issues.append("File download may be blocked in in-app browsers")
    if parts.username or parts.password:
        issues.append("Basic auth may not work in in-app browsers")
    return issues


def estimate_redirect_performance(url: str) -> dict:
    """Rough latency guess from URL shape: ``{estimated_time_ms, confidence, factors}``."""
    factors: list[str] = []
    estimated = 100
    confidence = "high"
    parts = parse_structured(normalize(url)) if url else None
    if parts is None:
        return {"estimated_time_ms": estimated, "confidence": "low", "factors": ["Unable to analyze URL"]}
    hostname = parts.hostname or ""
    if hostname.rsplit(".", 1)[-1] in FAR_TLDS:
        estimated += 150
        factors.append("Geographic distance may increase latency")
    if any(cdn in hostname for cdn in CDN_MARKERS):
        estimated -= 30
        factors.append("CDN detected - likely fast")
    if parts.scheme == "https":
        estimated += 20
    if parts.query and len(parts.query) + 1 > 200:
        estimated += 30
        factors.append("Complex query string")
        confidence = "medium"
    return {"estimated_time_ms": estimated, "confidence": confidence, "factors": factors}

from __future__ import annotations
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit, parse_qsl, quote, SplitResult

from linkpeek.urls.normalizer import normalize_with_issues

MAX_URL_LENGTH = 2048
MIN_URL_LENGTH = 10
LONG_QUERY_LENGTH = 500

SHORTENERS = ("bit.ly", "tinyurl.com", "ow.ly", "t.co", "goo.gl", "rebrand.ly", "short.io", "buff.ly", "dlvr.it")

_PRIVATE_HOST_RES = (
    re.compile(r"^127\.\d+\.\d+\.\d+$"),
    re.compile(r"^192\.168\.\d+\.\d+$"),
    re.compile(r"^10\.\d+\.\d+\.\d+$"),
)
_ENCODED_RE = re.compile(r"%[0-9A-F]{2}", re.IGNORECASE)
# characters a browser leaves alone when it serializes a path
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"


@dataclass
class ValidationResult:
    is_valid: bool = False
    sanitized: str | None = None
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    estimated_hops: int = 1

    def raise_hops(self, hops: int) -> None:
        self.estimated_hops = max(self.estimated_hops, hops)


def parse_structured(url: str) -> SplitResult | None:
    """urlsplit plus the checks a browser URL parser would make. None when unparseable."""
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a non-numeric or out-of-range port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    return parts


def is_private_host(hostname: str) -> bool:
    return hostname == "localhost" or any(r.match(hostname) for r in _PRIVATE_HOST_RES)


def is_shortener(hostname: str) -> bool:
    # suffix match so that e.g. "microsoft.com" is not mistaken for "t.co"
    return any(hostname == s or hostname.endswith("." + s) for s in SHORTENERS)


def looks_like_redirect_wrapper(parts: SplitResult) -> bool:
    keys = {k for k, _ in parse_qsl(parts.query, keep_blank_values=True)}
    return "redirect" in keys or "url" in keys or "/redirect" in parts.path or "/goto" in parts.path


def validate(url: str | None) -> ValidationResult:
    """Structural validation of a destination URL.

    Never raises; problems that make the URL unusable go into ``issues``,
    advisory findings into ``warnings``.
    """
    result = ValidationResult()
    if not url or not isinstance(url, str):
        result.issues.append("URL is required")
        return result

    normalized = normalize_with_issues(url)
    sanitized = normalized.value
    result.sanitized = sanitized
    result.warnings.extend(f"URL normalization: {issue}" for issue in normalized.issues)

    if len(sanitized) > MAX_URL_LENGTH:
        result.issues.append(f"URL exceeds maximum length of {MAX_URL_LENGTH} characters")
        return result
    if len(sanitized) < MIN_URL_LENGTH:
        result.issues.append("URL too short")
        return result

    parts = parse_structured(sanitized)
    if parts is None:
        result.issues.append("Invalid URL format")
        return result
    if parts.scheme.lower() not in ("http", "https"):
        result.issues.append(f"Unsupported protocol: {parts.scheme}:. Only HTTP(S) allowed")
        return result

    hostname = parts.hostname or ""
    if is_private_host(hostname):
        result.warnings.append("URL points to localhost or private IP")
    if is_shortener(hostname):
        result.warnings.append("URL uses a link shortener - may add redirect hops")
        result.raise_hops(2)
    if looks_like_redirect_wrapper(parts):
        result.warnings.append("URL appears to be a redirect wrapper")
        result.raise_hops(2)
    # length of the query as a browser reports it, leading "?" included
    if parts.query and len(parts.query) + 1 > LONG_QUERY_LENGTH:
        result.warnings.append("URL has very long query string - may cause issues in some browsers")
    # normalize leaves the path decoded; re-quote it the way a browser reports it
    if _ENCODED_RE.search(quote(parts.path, safe=_PATH_SAFE)):
        result.warnings.append("URL contains encoded characters in path")

    result.is_valid = True
    return result

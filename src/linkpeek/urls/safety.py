from __future__ import annotations
import re
from dataclasses import dataclass

from linkpeek.urls.normalizer import normalize
from linkpeek.urls.validator import parse_structured

SUSPICIOUS_TLDS = (".tk", ".ml", ".ga", ".cf", ".gq")
MAX_HOST_LABELS = 5

_CYRILLIC_RE = re.compile(r"[\u0400-\u04ff]")
_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


@dataclass
class SafetyVerdict:
    safe: bool
    reason: str | None = None


def is_url_safe(url: str) -> SafetyVerdict:
    """Advisory phishing heuristics. Callers decide whether to block or only warn."""
    parts = parse_structured(normalize(url)) if url else None
    if parts is None:
        return SafetyVerdict(False, "Invalid URL format")
    hostname = (parts.hostname or "").lower()
    if _CYRILLIC_RE.search(hostname):
        return SafetyVerdict(False, "Potential homograph attack detected")
    if hostname.endswith(SUSPICIOUS_TLDS):
        return SafetyVerdict(False, "Suspicious top-level domain")
    if len(hostname.split(".")) > MAX_HOST_LABELS:
        return SafetyVerdict(False, "Excessive subdomains detected")
    if _IPV4_RE.match(hostname):
        return SafetyVerdict(False, "IP address instead of domain name")
    return SafetyVerdict(True)

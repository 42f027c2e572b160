"""Destination URL normalization.

``normalize`` always returns a string. Each stage returns a ``ParseResult`` whose ``value`` is
the best-effort string so far; a stage that cannot parse its input hands it on unchanged and
records why in ``issues``.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit, unquote, parse_qsl

WRAPPER_HOSTS = frozenset({"l.instagram.com", "l.facebook.com", "lm.facebook.com"})
# the redirect endpoint also unwraps TikTok share links
ENDPOINT_WRAPPER_HOSTS = WRAPPER_HOSTS | {"vm.tiktok.com"}
UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

MAX_DECODE_PASSES = 5

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_NULL_ESCAPE_RE = re.compile(r"%00", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_SCHEME_TYPO_RE = re.compile(r"^(https?):/(?=[^/])", re.IGNORECASE)
_SLASH_RUN_RE = re.compile(r"/{2,}")


@dataclass
class ParseResult:
    ok: bool
    value: str
    issues: list[str] = field(default_factory=list)


def strip_controls(raw: str) -> ParseResult:
    value = _CONTROL_RE.sub("", raw.strip())
    value = _NULL_ESCAPE_RE.sub("", value)
    return ParseResult(True, value)


def coerce_scheme(url: str) -> ParseResult:
    url = _SCHEME_TYPO_RE.sub(r"\1://", url)
    if _SCHEME_RE.match(url):
        return ParseResult(True, url)
    return ParseResult(True, "https://" + url)


def _split_tail(rest: str) -> int:
    """Index where the query or fragment begins, or len(rest)."""
    cut = len(rest)
    for sep in ("?", "#"):
        i = rest.find(sep)
        if i != -1 and i < cut:
            cut = i
    return cut


def collapse_path_slashes(url: str) -> ParseResult:
    scheme, sep, rest = url.partition("://")
    if not sep:
        return ParseResult(False, url, ["missing scheme separator"])
    cut = _split_tail(rest)
    head = _SLASH_RUN_RE.sub("/", rest[:cut])
    return ParseResult(True, f"{scheme}://{head}{rest[cut:]}")


def decode_repeatedly(url: str, max_passes: int = MAX_DECODE_PASSES) -> ParseResult:
    current = url
    for _ in range(max_passes):
        try:
            decoded = unquote(current, errors="strict")
        except UnicodeDecodeError:
            return ParseResult(False, current, ["percent-decoding failed"])
        if decoded == current:
            break
        current = decoded
    return ParseResult(True, current)


def unwrap(url: str, wrapper_hosts=WRAPPER_HOSTS) -> ParseResult:
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError as err:
        return ParseResult(False, url, [f"unparseable url: {err}"])
    if host not in wrapper_hosts:
        return ParseResult(True, url)
    target = None
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key == "u":
            target = value
            break
    if not target:
        return ParseResult(True, url, ["wrapper without target"])
    # parse_qsl already decoded one level; a nested wrapper is peeled before
    # decode_repeatedly can merge its target's query into the outer one
    nested = unwrap(target, wrapper_hosts)
    return ParseResult(True, nested.value if nested.ok else target, nested.issues)


def clean_utm(url: str) -> ParseResult:
    """Drop empty UTM params and repeated UTM keys; everything else stays verbatim."""
    q = url.find("?")
    if q == -1:
        return ParseResult(True, url)
    h = url.find("#", q)
    query = url[q + 1:] if h == -1 else url[q + 1:h]
    fragment = "" if h == -1 else url[h:]
    kept: list[str] = []
    seen: set[str] = set()
    changed = False
    for segment in query.split("&"):
        key, _, value = segment.partition("=")
        lowered = key.lower()
        if lowered in UTM_KEYS:
            if not value.strip() or lowered in seen:
                changed = True
                continue
            seen.add(lowered)
        kept.append(segment)
    if not changed:
        return ParseResult(True, url)
    rebuilt = url[:q]
    if kept:
        rebuilt += "?" + "&".join(kept)
    return ParseResult(True, rebuilt + fragment)


def _normalize_once(url: str, wrapper_hosts) -> ParseResult:
    # unwrap reads the raw query so a target's own "&" survives the decode stage
    issues: list[str] = []
    ok = True
    for stage in (strip_controls, coerce_scheme, collapse_path_slashes,
                  lambda u: unwrap(u, wrapper_hosts), decode_repeatedly, clean_utm):
        step = stage(url)
        url = step.value
        ok = ok and step.ok
        issues.extend(step.issues)
    return ParseResult(ok, url, issues)


def normalize_with_issues(raw: str | None, wrapper_hosts=WRAPPER_HOSTS) -> ParseResult:
    """``normalize`` plus the diagnostics of every stage that had to skip its work.

    Passes repeat until the output stops changing. Every stage either shrinks the string or
    leaves it alone once a scheme is present, so the loop terminates; ``seen`` stops it on a
    repeated value all the same.
    """
    if not raw:
        return ParseResult(True, "")
    current = raw
    issues: list[str] = []
    ok = True
    seen = {current}
    while True:
        step = _normalize_once(current, wrapper_hosts)
        ok = ok and step.ok
        for issue in step.issues:
            if issue not in issues:
                issues.append(issue)
        if step.value in seen:
            return ParseResult(ok, step.value, issues)
        seen.add(step.value)
        current = step.value


def normalize(raw: str | None, wrapper_hosts=WRAPPER_HOSTS) -> str:
    """Sanitize a user-supplied destination into a navigable https? URL string.

    The result is stable under re-normalization: an unwrapped target gets the same treatment
    as the wrapper, and deeply nested percent-encoding is peeled until nothing changes.
    """
    return normalize_with_issues(raw, wrapper_hosts).value

import pytest

from linkpeek.urls.normalizer import normalize, normalize_with_issues, clean_utm, decode_repeatedly, unwrap, ENDPOINT_WRAPPER_HOSTS
from linkpeek.urls.validator import validate
from linkpeek.urls.safety import is_url_safe
from linkpeek.urls.helpers import (
    extract_utm_params,
    build_url_with_utm,
    strip_tracking_params,
    get_domain,
    detect_in_app_browser_issues,
    estimate_redirect_performance,
)


class TestNormalize:
    def test_unwraps_instagram_wrapper(self):
        assert normalize("https://l.instagram.com/?u=https%3A%2F%2Fexample.com%2Fpage") == "https://example.com/page"

    def test_unwraps_facebook_wrapper_with_extra_params(self):
        assert normalize("https://l.facebook.com/?u=https%3A%2F%2Fexample.com%2Fpage&h=test") == "https://example.com/page"

    def test_tiktok_only_unwrapped_for_endpoint(self):
        wrapped = "https://vm.tiktok.com/?u=https%3A%2F%2Fexample.com%2Fsale"
        assert normalize(wrapped, ENDPOINT_WRAPPER_HOSTS) == "https://example.com/sale"
        assert normalize(wrapped).startswith("https://vm.tiktok.com/")

    def test_wrapper_without_target_passes_through(self):
        assert normalize("https://l.instagram.com/?x=1") == "https://l.instagram.com/?x=1"
        assert normalize("https://l.instagram.com/?u=") == "https://l.instagram.com/?u="

    def test_protocol_coercion(self):
        assert normalize("example.com") == "https://example.com"

    def test_http_kept(self):
        assert normalize("HTTP://example.com/a") == "HTTP://example.com/a"

    def test_control_chars_stripped(self):
        assert normalize("https://example.com\x00test") == "https://example.comtest"
        assert normalize("  https://example.com/\x1fa\x7f  ") == "https://example.com/a"

    def test_encoded_null_removed(self):
        assert normalize("https://example.com/a%00b") == "https://example.com/ab"

    def test_collapses_path_slashes_only(self):
        assert normalize("https://example.com//a///b") == "https://example.com/a/b"
        assert normalize("https://example.com/a?next=//x") == "https://example.com/a?next=//x"

    def test_scheme_typo_fixed(self):
        assert normalize("https:/example.com") == "https://example.com"

    def test_double_encoding_decoded(self):
        assert normalize("https://example.com/a%2520b") == "https://example.com/a b"

    def test_decode_failure_keeps_last_value(self):
        result = decode_repeatedly("https://example.com/%E0%A4%A")
        assert result.value == "https://example.com/%E0%A4%A"
        assert not result.ok

    def test_empty_input(self):
        assert normalize("") == ""
        assert normalize(None) == ""

    def test_utm_cleanup(self):
        url = "https://example.com/?utm_source=&utm_medium=social&a=1&utm_medium=other&b=2"
        assert normalize(url) == "https://example.com/?utm_medium=social&a=1&b=2"

    def test_utm_cleanup_keeps_fragment(self):
        assert clean_utm("https://example.com/?utm_term=#top").value == "https://example.com/#top"

    def test_non_utm_params_verbatim(self):
        url = "https://example.com/?z=1&a=&a=2"
        assert normalize(url) == url

    @pytest.mark.parametrize("raw", [
        "example.com",
        "https://l.instagram.com/?u=https%3A%2F%2Fl.facebook.com%2F%3Fu%3Dhttps%253A%252F%252Fexample.com",
        "https://example.com/a%252520b?utm_source=&x=1",
        "  https://example.com//x//y?utm_medium=a&utm_medium=b  ",
        "https://example.com/%E0%A4%A",
        "   ",
        "javascript:alert(1)",
    ])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once

    def test_deep_encoding_reaches_fixed_point(self):
        raw = "https://example.com/%" + "25" * 45 + "41"
        once = normalize(raw)
        assert once == "https://example.com/A"
        assert normalize(once) == once

    def test_wrapped_target_keeps_its_own_query(self):
        wrapped = "https://l.facebook.com/l.php?u=https%3A%2F%2Fshop.example%2F%3Fa%3D1%26b%3D2&h=AT0"
        assert normalize(wrapped) == "https://shop.example/?a=1&b=2"

    def test_double_wrapped_target(self):
        wrapped = "https://l.instagram.com/?u=https%3A%2F%2Fl.facebook.com%2F%3Fu%3Dhttps%253A%252F%252Fshop.example%252F%253Fa%253D1%2526b%253D2"
        assert normalize(wrapped) == "https://shop.example/?a=1&b=2"

    def test_stage_diagnostics_collected(self):
        result = normalize_with_issues("https://l.instagram.com/?x=1")
        assert result.ok
        assert result.value == "https://l.instagram.com/?x=1"
        assert result.issues == ["wrapper without target"]
        failed = normalize_with_issues("https://example.com/%E0%A4%A")
        assert not failed.ok
        assert failed.issues == ["percent-decoding failed"]

    def test_clean_input_has_no_diagnostics(self):
        result = normalize_with_issues("example.com/page")
        assert (result.ok, result.value, result.issues) == (True, "https://example.com/page", [])

    def test_unwrap_reports_unparseable(self):
        result = unwrap("https://[::1/")
        assert not result.ok
        assert result.value == "https://[::1/"


class TestValidate:
    def test_missing(self):
        result = validate("")
        assert not result.is_valid
        assert result.issues == ["URL is required"]

    def test_too_long(self):
        result = validate("https://example.com/" + "a" * 2100)
        assert not result.is_valid
        assert result.issues

    def test_too_short(self):
        result = validate("a")
        assert not result.is_valid
        assert "URL too short" in result.issues

    def test_unparseable(self):
        result = validate("https://example.com:99999/path")
        assert not result.is_valid
        assert "Invalid URL format" in result.issues

    def test_shortener(self):
        result = validate("https://bit.ly/abc")
        assert result.is_valid
        assert any("shortener" in w for w in result.warnings)
        assert result.estimated_hops == 2

    def test_shortener_suffix_match_only(self):
        result = validate("https://microsoft.com/page")
        assert result.is_valid
        assert result.warnings == []
        assert result.estimated_hops == 1

    def test_private_host_warning(self):
        result = validate("http://192.168.1.10/admin")
        assert result.is_valid
        assert any("private" in w for w in result.warnings)

    def test_redirect_wrapper_warning(self):
        result = validate("https://example.com/goto?id=5")
        assert result.estimated_hops == 2
        assert any("redirect wrapper" in w for w in result.warnings)

    def test_long_query_warning(self):
        result = validate("https://example.com/?q=" + "x" * 600)
        assert result.is_valid
        assert any("long query" in w for w in result.warnings)

    def test_hops_never_lowered(self):
        result = validate("https://bit.ly/redirect?url=x")
        assert result.estimated_hops == 2

    @pytest.mark.parametrize("raw", [
        "https://example.com/a%20b",
        "https://example.com/caf%C3%A9",
    ])
    def test_encoded_path_warning(self, raw):
        result = validate(raw)
        assert result.is_valid
        assert "URL contains encoded characters in path" in result.warnings

    def test_decoded_slash_is_not_encoded(self):
        result = validate("https://example.com/a%2Fb")
        assert result.sanitized == "https://example.com/a/b"
        assert "URL contains encoded characters in path" not in result.warnings

    def test_normalization_diagnostics_become_warnings(self):
        result = validate("https://l.instagram.com/?x=1")
        assert result.is_valid
        assert "URL normalization: wrapper without target" in result.warnings

    def test_plain_url_clean(self):
        result = validate("https://example.com/page")
        assert result.is_valid
        assert result.sanitized == "https://example.com/page"
        assert result.issues == [] and result.warnings == []


class TestIsUrlSafe:
    def test_safe(self):
        assert is_url_safe("https://example.com").safe

    def test_cyrillic_homograph(self):
        verdict = is_url_safe("https://аpple.com")
        assert not verdict.safe
        assert "homograph" in verdict.reason

    def test_suspicious_tld(self):
        assert not is_url_safe("https://free-prizes.tk").safe

    def test_excessive_labels(self):
        assert not is_url_safe("https://a.b.c.d.e.example.com").safe

    def test_bare_ipv4(self):
        verdict = is_url_safe("http://203.0.113.9/login")
        assert not verdict.safe
        assert "IP address" in verdict.reason

    def test_unparseable(self):
        assert not is_url_safe("https://example.com:notaport").safe
        assert not is_url_safe("").safe


class TestHelpers:
    def test_extract_utm(self):
        url = "https://example.com/?utm_source=ig&utm_campaign=spring&utm_source=other&x=1"
        assert extract_utm_params(url) == {"utm_source": "ig", "utm_campaign": "spring"}

    def test_extract_utm_unparseable(self):
        assert extract_utm_params("not a url") == {}

    def test_build_url_with_utm(self):
        url = build_url_with_utm("example.com/p?x=1&utm_source=old", source="ig", medium="bio")
        assert url == "https://example.com/p?x=1&utm_source=ig&utm_medium=bio"

    def test_strip_tracking(self):
        url = "https://example.com/p?fbclid=abc&a=1&gclid=z"
        assert strip_tracking_params(url) == "https://example.com/p?a=1"
        assert strip_tracking_params("https://example.com/p?a=1") == "https://example.com/p?a=1"

    def test_get_domain(self):
        assert get_domain("shop.example/sale") == "shop.example"
        assert get_domain("") is None

    def test_in_app_issues(self):
        assert detect_in_app_browser_issues("mailto:a@b.c")
        assert detect_in_app_browser_issues("https://example.com/menu.pdf") == ["File download may be blocked in in-app browsers"]
        assert detect_in_app_browser_issues("https://user:pw@example.com/") == ["Basic auth may not work in in-app browsers"]
        assert detect_in_app_browser_issues("https://example.com/page") == []

    def test_estimate_performance(self):
        fast = estimate_redirect_performance("https://cdn.cloudflare.com/x")
        assert fast["estimated_time_ms"] == 90
        far = estimate_redirect_performance("https://shop.example.jp/?q=" + "x" * 250)
        assert far["estimated_time_ms"] == 300
        assert far["confidence"] == "medium"

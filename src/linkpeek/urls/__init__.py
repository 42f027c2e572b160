from linkpeek.urls.normalizer import normalize, normalize_with_issues, ENDPOINT_WRAPPER_HOSTS, WRAPPER_HOSTS, ParseResult
from linkpeek.urls.validator import validate, ValidationResult
from linkpeek.urls.safety import is_url_safe, SafetyVerdict

__all__ = [
    "normalize",
    "normalize_with_issues",
    "validate",
    "is_url_safe",
    "ParseResult",
    "ValidationResult",
    "SafetyVerdict",
    "WRAPPER_HOSTS",
    "ENDPOINT_WRAPPER_HOSTS",
]

from linkpeek.redirect.strategy import (
    calculate_risk,
    should_use_fallback,
    get_recovery_strategy,
    get_redirect_timeout,
    build_fallback_url,
    RecoveryPlan,
)
from linkpeek.redirect.tracker import RedirectTracker
from linkpeek.redirect.chain import inspect_redirect_chain

__all__ = [
    "calculate_risk",
    "should_use_fallback",
    "get_recovery_strategy",
    "get_redirect_timeout",
    "build_fallback_url",
    "RecoveryPlan",
    "RedirectTracker",
    "inspect_redirect_chain",
]

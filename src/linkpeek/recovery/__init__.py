from linkpeek.recovery.client import (
    RecoveryClient,
    BrowserEnvironment,
    AttemptLog,
    HttpAttemptRecorder,
    DatabaseAttemptRecorder,
    manual_instructions,
)

__all__ = [
    "RecoveryClient",
    "BrowserEnvironment",
    "AttemptLog",
    "HttpAttemptRecorder",
    "DatabaseAttemptRecorder",
    "manual_instructions",
]

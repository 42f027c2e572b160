"""linkpeek: redirect resolution, in-app browser recovery and incident detection.

Submodules are not imported eagerly; ``linkpeek.infrastructure.db`` builds its engine at import
time and needs ``DATABASE_URL`` (or the Supabase variables) to be set first.
"""

__version__ = "0.1.0"

__all__ = ["config", "urls", "browser", "redirect", "security", "recovery"]

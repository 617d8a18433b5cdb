"""Bearer token verification."""

from finance_tracker.services.auth.identity import IdentityResolver

__all__ = ["IdentityResolver"]

"""View-layer adapters."""

from .error_boundary import ErrorBoundary, default_fallback

__all__ = ["ErrorBoundary", "default_fallback"]

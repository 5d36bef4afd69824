"""Video link resolution."""

from .resolver import MediaResolutionError, MediaResolver, UrlPatternResolver, normalise_url  # noqa: F401

__all__ = ["MediaResolutionError", "MediaResolver", "UrlPatternResolver", "normalise_url"]

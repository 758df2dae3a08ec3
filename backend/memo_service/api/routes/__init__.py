"""API routes package."""

from . import health, memo, quality

__all__ = ["health", "memo", "quality"]

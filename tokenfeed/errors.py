"""
Shared exception types for tokenfeed.
Stable surface; extend only.
"""

from __future__ import annotations


class TokenFeedError(Exception):
    """Base exception for tokenfeed; catch this for any package-raised error."""

    pass


class ProviderExhaustedError(TokenFeedError):
    """Every provider in a priority list failed and no fallback was allowed."""

    pass


__all__ = ["ProviderExhaustedError", "TokenFeedError"]

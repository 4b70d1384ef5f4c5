"""HTTP client for the external bookmark store."""

from .api_client import BookmarkClient
from .rate_limiter import AdaptiveRateLimiter

__all__ = ["AdaptiveRateLimiter", "BookmarkClient"]

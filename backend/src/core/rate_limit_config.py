"""
Rate limiting policy: which limits apply to which kind of request.

Enforcement lives in rate_limiter.py. To adjust limits, modify RATE_LIMITS.
To mark a new endpoint as expensive, add it to SENSITIVE_ENDPOINTS.
"""
from dataclasses import dataclass
from enum import Enum


class OperationType(Enum):
    """Operation type for rate limiting."""

    READ = "read"
    WRITE = "write"
    SENSITIVE = "sensitive"  # Paid generative AI calls and outbound fetches


@dataclass
class RateLimitConfig:
    """Rate limit configuration for one operation type."""

    requests_per_minute: int
    requests_per_day: int


@dataclass
class RateLimitResult:
    """Result of a rate limit check with all info needed for headers."""

    allowed: bool
    limit: int  # Max requests in current window
    remaining: int  # Requests remaining in current window
    reset: int  # Unix timestamp when window resets
    retry_after: int  # Seconds until retry allowed (0 if allowed)

    @classmethod
    def permissive(cls, limit: int = 0) -> "RateLimitResult":
        """Result used when no limit applies or Redis is unavailable."""
        return cls(allowed=True, limit=limit, remaining=limit, reset=0, retry_after=0)


class RateLimitExceededError(Exception):
    """Raised when rate limit is exceeded."""

    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        super().__init__("Rate limit exceeded")


# Daily caps: general (read/write) vs sensitive are tracked separately.
RATE_LIMITS: dict[OperationType, RateLimitConfig] = {
    OperationType.READ: RateLimitConfig(300, 4000),
    OperationType.WRITE: RateLimitConfig(90, 4000),
    OperationType.SENSITIVE: RateLimitConfig(10, 100),
}


# Format: (HTTP_METHOD, path_without_query_params)
SENSITIVE_ENDPOINTS: set[tuple[str, str]] = {
    ("POST", "/actions/audience-suggestions"),
    ("POST", "/actions/vectorise-logo"),
}


def get_operation_type(method: str, path: str) -> OperationType:
    """Determine operation type from HTTP method and path."""
    if (method, path) in SENSITIVE_ENDPOINTS:
        return OperationType.SENSITIVE
    if method in ("GET", "HEAD"):
        return OperationType.READ
    return OperationType.WRITE

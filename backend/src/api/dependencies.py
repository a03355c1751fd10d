"""FastAPI dependencies for injection."""
import logging

from fastapi import Depends, Request

from core.auth import AuthenticatedUser, get_current_user
from core.config import Settings, get_settings
from core.rate_limit_config import RateLimitExceededError, get_operation_type
from core.rate_limiter import check_rate_limit
from db.document_store import get_document_store
from services.exceptions import ConfigurationError
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

# One client per API key (the SDK pools connections internally)
_llm_clients: dict[str, LLMClient] = {}


async def get_rate_limited_user(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """
    Authenticate, then apply the rate limit for this endpoint.

    Stores limit info on ``request.state`` for the headers middleware.

    Raises:
        RateLimitExceededError: If the caller is over their limit.
    """
    operation_type = get_operation_type(request.method, request.url.path)
    result = await check_rate_limit(user.uid, operation_type)
    request.state.rate_limit_info = {
        "limit": result.limit,
        "remaining": result.remaining,
        "reset": result.reset,
    }
    if not result.allowed:
        raise RateLimitExceededError(result)
    return user


def get_llm_client(settings: Settings = Depends(get_settings)) -> LLMClient | None:
    """Shared LLM client, or None when no API key is configured."""
    key = settings.anthropic_api_key
    if key not in _llm_clients:
        try:
            _llm_clients[key] = LLMClient(settings)
        except ConfigurationError:
            logger.warning("ANTHROPIC_API_KEY not configured; AI suggestions disabled")
            return None
    return _llm_clients[key]


__all__ = [
    "get_current_user",
    "get_document_store",
    "get_llm_client",
    "get_rate_limited_user",
    "get_settings",
]

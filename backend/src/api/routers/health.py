"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.redis import get_redis_client
from db.document_store import DocumentStore, get_document_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    redis: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: DocumentStore = Depends(get_document_store),
) -> HealthResponse:
    """Check application, document store and Redis health."""
    db_status = "healthy"
    try:
        if not await store.ping():
            db_status = "unhealthy"
    except Exception:
        logger.exception("Document store health check failed")
        db_status = "unhealthy"

    # Redis is optional (rate limiting fails open), so it never degrades status
    redis_client = get_redis_client()
    if redis_client is None or not redis_client.is_connected:
        redis_status = "disabled"
    else:
        redis_status = "healthy" if await redis_client.ping() else "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        redis=redis_status,
    )

"""
Server actions: client-invoked operations that call generative AI services.

Every action requires a verified ID token and counts against the SENSITIVE
rate limit. Expected failures come back as ``success: false`` with a message
the UI can show; only authentication and rate limiting use HTTP error codes.
"""
import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_llm_client, get_rate_limited_user
from core.auth import AuthenticatedUser
from core.config import Settings, get_settings
from core.url_allowlist import DisallowedUrlError, is_allowed_url, truncate_url
from db.document_store import DocumentStore, get_document_store
from schemas.actions import (
    ActionResult,
    AudienceSuggestionsInput,
    AudienceSuggestionsOutput,
    VectoriseLogoInput,
    VectoriseLogoOutput,
)
from services import audience_service, credit_service, vectorize_service
from services.exceptions import (
    ActionError,
    ConcurrentModificationError,
    InsufficientCreditsError,
)
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/actions", tags=["actions"])


@router.post(
    "/audience-suggestions",
    response_model=ActionResult[AudienceSuggestionsOutput],
)
async def get_audience_suggestions(
    data: AudienceSuggestionsInput,
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    llm: LLMClient | None = Depends(get_llm_client),
) -> ActionResult[AudienceSuggestionsOutput]:
    """Suggest four target audiences for the brand being onboarded."""
    logger.info("audience_suggestions_requested", extra={"uid": user.uid})
    suggestions = await audience_service.generate_audience_suggestions(data, llm)
    return ActionResult[AudienceSuggestionsOutput].ok(suggestions)


@router.post(
    "/vectorise-logo",
    response_model=ActionResult[VectoriseLogoOutput],
)
async def vectorise_logo(
    data: VectoriseLogoInput,
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_settings),
) -> ActionResult[VectoriseLogoOutput]:
    """
    Convert a raster logo into an SVG data URI.

    Credits are reserved before calling fal and refunded if the call fails.
    Cheap checks (configuration, URL allowlist) run first so rejected requests
    never touch the balance.
    """
    result_type = ActionResult[VectoriseLogoOutput]

    if not settings.fal_key:
        logger.error("FAL_KEY environment variable is not set")
        return result_type.fail("Logo vectorisation is not available right now.")
    if not is_allowed_url(data.logo_url):
        logger.warning(
            "vectorise_logo_blocked_url",
            extra={"uid": user.uid, "logo_url": truncate_url(data.logo_url)},
        )
        return result_type.fail("Logo URL is not allowed.")

    cost = settings.vectorize_credit_cost
    try:
        await credit_service.ensure_user(store, user.uid, settings.initial_credits)
        remaining = await credit_service.consume(store, user.uid, cost, "vectorise_logo")
    except (InsufficientCreditsError, ConcurrentModificationError) as e:
        logger.info("vectorise_logo_credits_unavailable", extra={"uid": user.uid})
        return result_type.fail(str(e))

    try:
        vector_logo_url = await vectorize_service.vectorise_logo(data, settings)
    except (ActionError, DisallowedUrlError) as e:
        await credit_service.refund(store, user.uid, cost, "vectorise_logo_refund")
        logger.warning("vectorise_logo_failed", extra={"uid": user.uid, "error": str(e)})
        return result_type.fail(str(e))
    except Exception:
        await credit_service.refund(store, user.uid, cost, "vectorise_logo_refund")
        raise

    return result_type.ok(
        VectoriseLogoOutput(vector_logo_url=vector_logo_url, credits_remaining=remaining),
    )

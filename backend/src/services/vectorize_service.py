"""Raster-to-SVG logo vectorisation through fal.ai."""
import base64
import logging

import httpx

from core.config import Settings
from core.url_allowlist import require_allowed_url, truncate_url
from schemas.actions import VectoriseLogoInput
from services.exceptions import ConfigurationError, UpstreamServiceError

logger = logging.getLogger(__name__)

DEFAULT_VECTOR_CONTENT_TYPE = "image/svg+xml"
MAX_VECTOR_BYTES = 10 * 1024 * 1024
FETCH_TIMEOUT = 30.0
MAX_REDIRECTS = 5


def to_data_uri(content: bytes, content_type: str | None) -> str:
    """Encode raw bytes as a base64 data URI."""
    media_type = (content_type or "").split(";")[0].strip() or DEFAULT_VECTOR_CONTENT_TYPE
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def _error_details(e: httpx.HTTPStatusError) -> str:
    """Prefer the provider's JSON error body over the bare status line."""
    try:
        body = e.response.json()
    except ValueError:
        return f"HTTP {e.response.status_code}"
    detail = body.get("detail", body) if isinstance(body, dict) else body
    return str(detail)[:500]


async def _call_fal(client: httpx.AsyncClient, settings: Settings, image_url: str) -> str:
    """Run the vectorize model and return the URL of the generated SVG."""
    endpoint = f"{settings.fal_api_url.rstrip('/')}/{settings.fal_vectorize_model}"
    response = await client.post(
        endpoint,
        json={"image_url": image_url},
        headers={"Authorization": f"Key {settings.fal_key}"},
        timeout=settings.ai_timeout_seconds,
    )
    response.raise_for_status()

    try:
        payload = response.json()
    except ValueError as e:
        raise UpstreamServiceError("Fal returned a non-JSON response.") from e

    image = payload.get("image") if isinstance(payload, dict) else None
    url = image.get("url") if isinstance(image, dict) else None
    if not url:
        raise UpstreamServiceError("Fal did not return an image URL.")
    return url


async def _download_vector(client: httpx.AsyncClient, vector_url: str) -> str:
    """Fetch the SVG from fal's CDN and inline it as a data URI."""
    if vector_url.startswith("data:"):
        return require_allowed_url(vector_url)
    url = require_allowed_url(vector_url)

    # Redirects are followed by hand so every hop is checked before it is fetched
    for _ in range(MAX_REDIRECTS + 1):
        response = await client.get(url, follow_redirects=False, timeout=FETCH_TIMEOUT)
        if not response.is_redirect:
            break
        url = require_allowed_url(str(response.next_request.url))
    else:
        raise UpstreamServiceError("Too many redirects fetching generated vector.")

    if not response.is_success:
        raise UpstreamServiceError(
            f"Failed to fetch generated vector: HTTP {response.status_code}",
        )

    content = response.content
    if len(content) > MAX_VECTOR_BYTES:
        raise UpstreamServiceError("Generated vector exceeds the maximum allowed size.")

    logger.info("vectorise_logo_downloaded", extra={"bytes": len(content)})
    return to_data_uri(content, response.headers.get("content-type"))


async def vectorise_logo(
    data: VectoriseLogoInput,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> str:
    """
    Convert a raster logo to SVG and return it as a data URI.

    Raises:
        ConfigurationError: If FAL_KEY is not configured.
        DisallowedUrlError: If the logo URL (or the generated vector URL) is not
            on the allowlist.
        UpstreamServiceError: If fal fails or returns something unusable.
    """
    if not settings.fal_key:
        raise ConfigurationError("FAL_KEY")

    logo_url = require_allowed_url(data.logo_url)
    logger.info("vectorise_logo_started", extra={"logo_url": truncate_url(logo_url)})

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient()
    try:
        vector_url = await _call_fal(client, settings, logo_url)
        logger.info("vectorise_logo_generated", extra={"vector_url": truncate_url(vector_url)})
        return await _download_vector(client, vector_url)
    except UpstreamServiceError as e:
        logger.error("Fal vectorization failed: %s", e)
        raise UpstreamServiceError(f"Fal vectorization failed: {e}") from e
    except httpx.HTTPStatusError as e:
        details = _error_details(e)
        logger.error("Fal vectorization failed: %s", details)
        raise UpstreamServiceError(f"Fal vectorization failed: {details}") from e
    except httpx.TimeoutException as e:
        logger.error("Fal vectorization timed out: %s", e)
        raise UpstreamServiceError("Fal vectorization failed: request timed out") from e
    except httpx.RequestError as e:
        logger.error("Fal vectorization request failed: %s", e)
        raise UpstreamServiceError(f"Fal vectorization failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

"""Authentication module for Firebase ID token validation."""
import logging
import time
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# Cache for JWKS client (reuse across requests)
_jwks_clients: dict[str, PyJWKClient] = {}

DEV_USER_UID = "dev-local-development-user"

# Allowed clock skew between us and the token issuer, in seconds
CLOCK_SKEW_SECONDS = 60


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified ID token."""

    uid: str
    email: str | None = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_jwks_client(settings: Settings) -> PyJWKClient:
    """Get or create a cached JWKS client for the given settings."""
    if settings.firebase_jwks_url not in _jwks_clients:
        _jwks_clients[settings.firebase_jwks_url] = PyJWKClient(
            settings.firebase_jwks_url,
            cache_jwk_set=True,
            lifespan=3600,  # Cache keys for 1 hour
        )
    return _jwks_clients[settings.firebase_jwks_url]


def decode_id_token(token: str, settings: Settings) -> dict:
    """
    Decode and validate a Firebase ID token.

    Every verification failure is reported to the caller with the same message;
    the specific reason is only logged.

    Raises:
        HTTPException: 401 if the token is invalid or expired, 503 if the
            signing keys cannot be fetched.
    """
    try:
        jwks_client = get_jwks_client(settings)
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.firebase_project_id,
            issuer=settings.firebase_issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.PyJWKClientConnectionError as e:
        logger.error("Failed to fetch Firebase signing keys: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        ) from e
    except jwt.PyJWTError as e:
        # Log full details for debugging (server-side only)
        logger.warning("ID token validation failed: %s", e)
        raise _unauthorized("Invalid or expired authentication token") from e

    auth_time = payload.get("auth_time")
    if isinstance(auth_time, int | float) and auth_time > time.time() + CLOCK_SKEW_SECONDS:
        logger.warning("ID token validation failed: auth_time in the future")
        raise _unauthorized("Invalid or expired authentication token")

    return payload


def require_server_auth(id_token: str | None, settings: Settings) -> AuthenticatedUser:
    """
    Verify an ID token sent by the client and return the caller's identity.

    Raises:
        HTTPException: 401 if the token is missing or fails verification.
    """
    if not id_token:
        raise _unauthorized("Authentication required")

    payload = decode_id_token(id_token, settings)

    uid = payload.get("sub")
    if not isinstance(uid, str) or not uid:
        raise _unauthorized("Invalid or expired authentication token")

    return AuthenticatedUser(uid=uid, email=payload.get("email"))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """
    Dependency that validates the bearer ID token and returns the current user.

    In DEV_MODE, bypasses verification and returns a fixed local user.
    """
    if settings.dev_mode:
        return AuthenticatedUser(uid=DEV_USER_UID, email="dev@localhost")

    token = credentials.credentials if credentials is not None else None
    return require_server_auth(token, settings)

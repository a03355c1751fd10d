"""Pytest fixtures for testing."""
import os
import time
from collections.abc import AsyncGenerator, Callable, Generator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

# Settings are validated when api.main is imported, so the required Firebase
# values must exist before any app import.
os.environ.setdefault("FIREBASE_PROJECT_ID", "test-project")
os.environ.setdefault("FIREBASE_APP_ID", "1:1234567890:web:abcdef")
os.environ.setdefault("FIREBASE_API_KEY", "test-api-key")
os.environ["DOCUMENT_STORE"] = "memory"
os.environ["REDIS_ENABLED"] = "false"
os.environ["DEV_MODE"] = "false"

from core.auth import AuthenticatedUser  # noqa: E402
from core.config import Settings  # noqa: E402
from db.document_store import MemoryDocumentStore, set_document_store  # noqa: E402

TEST_PROJECT_ID = "test-project"
TEST_KID = "test-key-1"


@pytest.fixture
def settings() -> Settings:
    """Settings for tests, independent of any local .env file."""
    return Settings(
        _env_file=None,
        FIREBASE_PROJECT_ID=TEST_PROJECT_ID,
        FIREBASE_APP_ID="1:1234567890:web:abcdef",
        FIREBASE_API_KEY="test-api-key",
        DOCUMENT_STORE="memory",
        REDIS_ENABLED="false",
        DEV_MODE="false",
        FAL_KEY="test-fal-key",
        FAL_API_URL="https://fal.run",
        ANTHROPIC_API_KEY="test-anthropic-key",
        INITIAL_CREDITS="3",
        VECTORIZE_CREDIT_COST="1",
    )


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key standing in for Google's securetoken signing key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def make_id_token(rsa_private_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Factory for signed ID tokens with Firebase-shaped claims."""

    def _make(
        uid: str = "user-123",
        email: str | None = "user@example.com",
        key: rsa.RSAPrivateKey | None = None,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": f"https://securetoken.google.com/{TEST_PROJECT_ID}",
            "aud": TEST_PROJECT_ID,
            "sub": uid,
            "iat": now,
            "exp": now + 3600,
            "auth_time": now,
        }
        if email is not None:
            claims["email"] = email
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims,
            key or rsa_private_key,
            algorithm="RS256",
            headers={"kid": TEST_KID},
        )

    return _make


@pytest.fixture
def mock_jwks(rsa_private_key: rsa.RSAPrivateKey) -> Generator[MagicMock]:
    """Serve the test public key instead of fetching Google's JWKS."""
    signing_key = MagicMock()
    signing_key.key = rsa_private_key.public_key()
    jwks_client = MagicMock()
    jwks_client.get_signing_key_from_jwt.return_value = signing_key
    with patch("core.auth.get_jwks_client", return_value=jwks_client):
        yield jwks_client


@pytest.fixture
def store() -> Generator[MemoryDocumentStore]:
    """Fresh in-memory document store installed as the global store."""
    document_store = MemoryDocumentStore()
    set_document_store(document_store)
    yield document_store
    set_document_store(None)


@pytest.fixture
def user_a() -> AuthenticatedUser:
    return AuthenticatedUser(uid="user-a", email="user-a@test.com")


@pytest.fixture
def user_b() -> AuthenticatedUser:
    return AuthenticatedUser(uid="user-b", email="user-b@test.com")


@pytest.fixture
def client_as(
    settings: Settings,
    store: MemoryDocumentStore,  # noqa: ARG001
) -> Callable[[AuthenticatedUser | None], Any]:
    """
    Factory for API clients authenticated as a given user.

    Passing None leaves real token verification in place.
    """
    from api.main import app  # noqa: PLC0415
    from core.auth import get_current_user  # noqa: PLC0415
    from core.config import get_settings  # noqa: PLC0415

    @asynccontextmanager
    async def _client(user: AuthenticatedUser | None) -> AsyncGenerator[AsyncClient]:
        app.dependency_overrides[get_settings] = lambda: settings
        if user is not None:
            app.dependency_overrides[get_current_user] = lambda: user
        try:
            async with AsyncClient(
                transport=ASGITransport(app=app),
                base_url="http://test",
            ) as test_client:
                yield test_client
        finally:
            app.dependency_overrides.clear()

    return _client


@pytest.fixture
async def client(
    client_as: Callable[[AuthenticatedUser | None], Any],
    user_a: AuthenticatedUser,
) -> AsyncGenerator[AsyncClient]:
    """API client authenticated as user A."""
    async with client_as(user_a) as test_client:
        yield test_client


@pytest.fixture
async def anonymous_client(
    client_as: Callable[[AuthenticatedUser | None], Any],
) -> AsyncGenerator[AsyncClient]:
    """API client with real token verification and no credentials."""
    async with client_as(None) as test_client:
        yield test_client

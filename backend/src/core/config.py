"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Firebase - required so we never silently talk to the wrong project
    firebase_project_id: str = Field(validation_alias="FIREBASE_PROJECT_ID", min_length=1)
    firebase_app_id: str = Field(validation_alias="FIREBASE_APP_ID", min_length=1)
    firebase_api_key: str = Field(validation_alias="FIREBASE_API_KEY", min_length=1)
    firebase_storage_bucket: str = Field(default="", validation_alias="FIREBASE_STORAGE_BUCKET")
    firebase_messaging_sender_id: str = Field(
        default="", validation_alias="FIREBASE_MESSAGING_SENDER_ID",
    )
    firebase_auth_domain: str = Field(default="", validation_alias="FIREBASE_AUTH_DOMAIN")

    # Document store backend
    document_store: Literal["memory", "firestore"] = Field(
        default="firestore", validation_alias="DOCUMENT_STORE",
    )
    firestore_emulator_host: str = Field(default="", validation_alias="FIRESTORE_EMULATOR_HOST")

    # Development mode - bypasses ID token verification for local development
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # Generative AI providers
    anthropic_api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(
        default="claude-sonnet-4-5-20250929", validation_alias="ANTHROPIC_MODEL",
    )
    fal_key: str = Field(default="", validation_alias="FAL_KEY")
    fal_api_url: str = Field(default="https://fal.run", validation_alias="FAL_API_URL")
    fal_vectorize_model: str = Field(
        default="fal-ai/recraft/vectorize", validation_alias="FAL_VECTORIZE_MODEL",
    )
    ai_timeout_seconds: float = Field(default=120.0, validation_alias="AI_TIMEOUT_SECONDS")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - for rate limiting
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Credits
    initial_credits: int = Field(default=3, ge=0, validation_alias="INITIAL_CREDITS")
    vectorize_credit_cost: int = Field(default=1, ge=0, validation_alias="VECTORIZE_CREDIT_COST")

    @field_validator("fal_key", "anthropic_api_key")
    @classmethod
    def strip_secret(cls, value: str) -> str:
        """Keys pasted into .env files often carry trailing whitespace or newlines."""
        return value.strip()

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled against a production Firestore project.

        DEV_MODE completely bypasses authentication, so it is only allowed with the
        in-memory store or the Firestore emulator.
        """
        if not self.dev_mode:
            return self

        if self.document_store == "memory" or self.firestore_emulator_host:
            return self

        raise ValueError(
            "DEV_MODE cannot be enabled with a live Firestore project. "
            f"Project '{self.firebase_project_id}' appears to be a production database. "
            "Use DOCUMENT_STORE=memory or set FIRESTORE_EMULATOR_HOST.",
        )

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def firebase_issuer(self) -> str:
        """Issuer claim of Firebase Auth ID tokens for this project."""
        return f"https://securetoken.google.com/{self.firebase_project_id}"

    @property
    def firebase_jwks_url(self) -> str:
        """JWKS URL for the public keys that sign Firebase ID tokens."""
        return FIREBASE_JWKS_URL

    def public_firebase_config(self) -> dict[str, str]:
        """Client-side Firebase web configuration (safe to expose)."""
        return {
            "projectId": self.firebase_project_id,
            "appId": self.firebase_app_id,
            "apiKey": self.firebase_api_key,
            "authDomain": (
                self.firebase_auth_domain or f"{self.firebase_project_id}.firebaseapp.com"
            ),
            "storageBucket": self.firebase_storage_bucket,
            "messagingSenderId": self.firebase_messaging_sender_id,
            "measurementId": "",
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

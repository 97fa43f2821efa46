from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from errors import ConfigurationError
from utils import mask_secret


class Configuration(BaseModel):
    # Google Places
    google_places_api_key: Optional[str] = Field(default=None)
    places_base_url: str = Field(default="https://maps.googleapis.com/maps/api/place")
    places_timeout: int = Field(default=10)

    # LLM (Gemini native when provider=google, otherwise hello_agents)
    local_llm: Optional[str] = Field(default=None)
    llm_provider: Optional[str] = Field(default=None)
    llm_api_key: Optional[str] = Field(default=None)
    llm_base_url: Optional[str] = Field(default=None)
    llm_model_id: Optional[str] = Field(default=None)
    # native ollama base (without /v1)
    ollama_base_url: str = Field(default="http://localhost:11434")

    # Stripe
    stripe_secret_key: Optional[str] = Field(default=None)
    stripe_price_id: Optional[str] = Field(default=None)
    stripe_webhook_secret: Optional[str] = Field(default=None)
    app_base_url: str = Field(default="http://localhost:3000")

    # Quota store
    quota_backend: str = Field(default="memory")
    firestore_project: Optional[str] = Field(default=None)
    users_collection: str = Field(default="users")
    free_spins: int = Field(default=3, ge=0)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "google_places_api_key": os.getenv("GOOGLE_PLACES_API_KEY"),
            "places_base_url": os.getenv("PLACES_BASE_URL"),
            "places_timeout": os.getenv("PLACES_TIMEOUT"),
            # LLM
            "local_llm": os.getenv("LOCAL_LLM"),
            "llm_provider": os.getenv("LLM_PROVIDER"),
            "llm_api_key": os.getenv("LLM_API_KEY"),
            "llm_base_url": os.getenv("LLM_BASE_URL"),
            "llm_model_id": os.getenv("LLM_MODEL_ID"),
            "ollama_base_url": os.getenv("OLLAMA_BASE_URL"),
            # Stripe
            "stripe_secret_key": os.getenv("STRIPE_SECRET_KEY"),
            "stripe_price_id": os.getenv("STRIPE_PRICE_ID"),
            "stripe_webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET"),
            "app_base_url": os.getenv("APP_BASE_URL"),
            # Store
            "quota_backend": os.getenv("QUOTA_BACKEND"),
            "firestore_project": os.getenv("FIRESTORE_PROJECT") or os.getenv("GOOGLE_CLOUD_PROJECT"),
            "users_collection": os.getenv("USERS_COLLECTION"),
            "free_spins": os.getenv("FREE_SPINS"),
        }

        for k, v in env_map.items():
            if v is None or v == "":
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_places(self) -> None:
        if not self.google_places_api_key:
            raise ConfigurationError(
                "The Google Places API key is missing. Set GOOGLE_PLACES_API_KEY."
            )

    def require_llm(self) -> None:
        if not (self.llm_provider or self.llm_base_url or self.local_llm):
            raise ConfigurationError("No LLM configured. Set LLM_PROVIDER or LLM_BASE_URL or LOCAL_LLM.")

    def require_stripe(self) -> None:
        if not self.stripe_secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not set.")
        if not self.stripe_price_id:
            raise ConfigurationError("STRIPE_PRICE_ID is not set.")

    def require_webhook_secret(self) -> None:
        if not self.stripe_webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not set.")

    def log_summary(self) -> str:
        return (
            "places=%s timeout=%s llm_provider=%s stripe=%s price=%s webhook_secret=%s quota_backend=%s free_spins=%s"
            % (
                mask_secret(self.google_places_api_key),
                self.places_timeout,
                self.llm_provider or "unset",
                mask_secret(self.stripe_secret_key),
                self.stripe_price_id or "unset",
                mask_secret(self.stripe_webhook_secret),
                self.quota_backend,
                self.free_spins,
            )
        )

    def sanitized_ollama_url(self) -> str:
        base = (self.ollama_base_url or "http://localhost:11434").rstrip("/")
        if not base.endswith("/v1"):
            base = f"{base}/v1"
        return base

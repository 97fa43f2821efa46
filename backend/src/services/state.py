from __future__ import annotations

from config import Configuration
from errors import ConfigurationError
from services.quota_store import FirestoreQuotaStore, InMemoryQuotaStore, QuotaStore


def build_quota_store(cfg: Configuration) -> QuotaStore:
    backend = (cfg.quota_backend or "memory").strip().lower()
    if backend == "memory":
        return InMemoryQuotaStore()
    if backend == "firestore":
        if not cfg.firestore_project:
            raise ConfigurationError("FIRESTORE_PROJECT is required when QUOTA_BACKEND=firestore")
        return FirestoreQuotaStore(project=cfg.firestore_project, collection=cfg.users_collection)
    raise ConfigurationError(f"QUOTA_BACKEND must be 'memory' or 'firestore'. Got: '{backend}'")

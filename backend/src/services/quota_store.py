"""Per-user quota records.

Collection layout: ``{users_collection}/{user_id}`` with fields
``spinsRemaining``, ``isPremium``, ``lastSpinAt``, ``createdAt`` and the
Stripe bookkeeping fields written by the subscription manager.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from errors import NotFound, StoreError
from models import QuotaRecord


class QuotaStore(Protocol):
    def get(self, user_id: str) -> Optional[QuotaRecord]: ...
    def get_or_create(self, user_id: str, defaults: Dict[str, Any]) -> Tuple[QuotaRecord, bool]: ...
    def decrement_if_positive(self, user_id: str, at: str) -> Optional[int]: ...
    def merge(self, user_id: str, fields: Dict[str, Any]) -> None: ...
    def find_by_field(self, field: str, value: Any, limit: int = 2) -> List[str]: ...
    def ping(self) -> bool: ...


def _remaining(data: Dict[str, Any]) -> int:
    try:
        return int(data.get("spinsRemaining") or 0)
    except (TypeError, ValueError):
        return 0


class InMemoryQuotaStore:
    """In-memory implementation for dev/tests; every primitive holds the lock."""

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[QuotaRecord]:
        with self._lock:
            data = self._docs.get(user_id)
            if data is None:
                return None
            return QuotaRecord.from_document(user_id, copy.deepcopy(data))

    def get_or_create(self, user_id: str, defaults: Dict[str, Any]) -> Tuple[QuotaRecord, bool]:
        with self._lock:
            created = user_id not in self._docs
            if created:
                self._docs[user_id] = dict(defaults)
            return QuotaRecord.from_document(user_id, copy.deepcopy(self._docs[user_id])), created

    def decrement_if_positive(self, user_id: str, at: str) -> Optional[int]:
        with self._lock:
            data = self._docs.get(user_id)
            if data is None:
                raise NotFound(f"User {user_id} not found")
            remaining = _remaining(data)
            if remaining <= 0:
                return None
            data["spinsRemaining"] = remaining - 1
            data["lastSpinAt"] = at
            return remaining - 1

    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            self._docs.setdefault(user_id, {}).update(fields)

    def find_by_field(self, field: str, value: Any, limit: int = 2) -> List[str]:
        with self._lock:
            matches = [uid for uid, data in self._docs.items() if data.get(field) == value]
        return matches[:limit]

    def ping(self) -> bool:
        return True

    def raw(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._docs.get(user_id)
            return copy.deepcopy(data) if data is not None else None


class FirestoreQuotaStore:
    """Firestore implementation.

    Get-or-create and the conditional decrement run inside Firestore
    transactions, which the SDK retries on contention, so ``spinsRemaining``
    never goes below zero.
    """

    def __init__(
        self,
        client: Optional[object] = None,
        *,
        project: Optional[str] = None,
        collection: str = "users",
    ) -> None:
        try:
            from google.api_core import exceptions as api_exceptions  # type: ignore
            from google.cloud import firestore  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dep
            raise RuntimeError("google-cloud-firestore not installed") from exc

        self._firestore = firestore
        self._api_error = api_exceptions.GoogleAPIError
        if client is None:
            if not project:
                raise RuntimeError("GCP project is required for Firestore quota store")
            client = firestore.Client(project=project)
        self._client = client
        self._collection = collection

    def _doc(self, user_id: str):
        return self._client.collection(self._collection).document(user_id)

    def _run_transaction(self, fn: Callable[[Any], Any]) -> Any:
        transaction = self._client.transaction()
        return self._firestore.transactional(fn)(transaction)

    def _guard(self, op: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except self._api_error as exc:
            logger.error("firestore {} failed: {}", op, exc)
            raise StoreError(f"Document store {op} failed: {exc}") from exc

    def get(self, user_id: str) -> Optional[QuotaRecord]:
        def _read():
            snap = self._doc(user_id).get()
            if snap and snap.exists:
                return QuotaRecord.from_document(user_id, snap.to_dict())
            return None

        return self._guard("get", _read)

    def get_or_create(self, user_id: str, defaults: Dict[str, Any]) -> Tuple[QuotaRecord, bool]:
        ref = self._doc(user_id)

        def _txn(transaction):
            snap = ref.get(transaction=transaction)
            if snap.exists:
                return QuotaRecord.from_document(user_id, snap.to_dict()), False
            transaction.set(ref, dict(defaults))
            return QuotaRecord.from_document(user_id, dict(defaults)), True

        return self._guard("get_or_create", lambda: self._run_transaction(_txn))

    def decrement_if_positive(self, user_id: str, at: str) -> Optional[int]:
        ref = self._doc(user_id)

        def _txn(transaction):
            snap = ref.get(transaction=transaction)
            if not snap.exists:
                raise NotFound(f"User {user_id} not found")
            remaining = _remaining(snap.to_dict() or {})
            if remaining <= 0:
                return None
            transaction.update(ref, {"spinsRemaining": remaining - 1, "lastSpinAt": at})
            return remaining - 1

        return self._guard("decrement", lambda: self._run_transaction(_txn))

    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        self._guard("merge", lambda: self._doc(user_id).set(dict(fields), merge=True))

    def find_by_field(self, field: str, value: Any, limit: int = 2) -> List[str]:
        def _query():
            docs = (
                self._client.collection(self._collection)
                .where(field, "==", value)
                .limit(limit)
                .stream()
            )
            return [d.id for d in docs]

        return self._guard("query", _query)

    def ping(self) -> bool:
        def _probe():
            # any read proves credentials + connectivity
            self._client.collection(self._collection).limit(1).get()
            return True

        return self._guard("ping", _probe)

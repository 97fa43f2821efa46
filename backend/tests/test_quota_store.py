from __future__ import annotations

from typing import Any, Dict, Optional

import pytest
from google.api_core import exceptions as api_exceptions

from errors import NotFound, StoreError
from services.quota_store import FirestoreQuotaStore, InMemoryQuotaStore


class _Snap:
    def __init__(self, doc_id: str, data: Optional[Dict[str, Any]]) -> None:
        self.id = doc_id
        self.exists = data is not None
        self._data = data

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self._data) if self._data is not None else None


class _DocRef:
    def __init__(self, docs: Dict[str, Dict[str, Any]], doc_id: str) -> None:
        self._docs = docs
        self.id = doc_id

    def get(self, transaction=None) -> _Snap:
        return _Snap(self.id, self._docs.get(self.id))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        if merge:
            self._docs.setdefault(self.id, {}).update(data)
        else:
            self._docs[self.id] = dict(data)


class _Query:
    def __init__(self, docs: Dict[str, Dict[str, Any]], field: Optional[str] = None, value: Any = None) -> None:
        self._docs = docs
        self._field = field
        self._value = value
        self._limit: Optional[int] = None

    def where(self, field: str, op: str, value: Any) -> "_Query":
        assert op == "=="
        return _Query(self._docs, field, value)

    def limit(self, n: int) -> "_Query":
        self._limit = n
        return self

    def stream(self):
        hits = [
            _Snap(doc_id, data)
            for doc_id, data in self._docs.items()
            if self._field is None or data.get(self._field) == self._value
        ]
        return iter(hits[: self._limit] if self._limit else hits)

    def get(self):
        return list(self.stream())


class _Collection(_Query):
    def document(self, doc_id: str) -> _DocRef:
        return _DocRef(self._docs, doc_id)


class _Transaction:
    def set(self, ref: _DocRef, data: Dict[str, Any]) -> None:
        ref.set(data)

    def update(self, ref: _DocRef, data: Dict[str, Any]) -> None:
        ref._docs[ref.id].update(data)


class FakeFirestore:
    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.collections: list[str] = []

    def collection(self, name: str) -> _Collection:
        self.collections.append(name)
        return _Collection(self.docs)

    def transaction(self) -> _Transaction:
        return _Transaction()


@pytest.fixture
def firestore_store(monkeypatch):
    client = FakeFirestore()
    store = FirestoreQuotaStore(client=client, collection="users")
    monkeypatch.setattr(store, "_run_transaction", lambda fn: fn(client.transaction()))
    return store, client


def test_firestore_get_or_create_sets_defaults_once(firestore_store) -> None:
    store, client = firestore_store
    record, created = store.get_or_create("u1", {"spinsRemaining": 3, "createdAt": "t0"})
    assert created is True
    assert record.spins_remaining == 3

    client.docs["u1"]["spinsRemaining"] = 1
    record, created = store.get_or_create("u1", {"spinsRemaining": 3, "createdAt": "t1"})
    assert created is False
    assert record.spins_remaining == 1
    assert client.docs["u1"]["createdAt"] == "t0"
    assert set(client.collections) == {"users"}


def test_firestore_conditional_decrement(firestore_store) -> None:
    store, client = firestore_store
    client.docs["u1"] = {"spinsRemaining": 1}
    assert store.decrement_if_positive("u1", "now") == 0
    assert client.docs["u1"] == {"spinsRemaining": 0, "lastSpinAt": "now"}
    assert store.decrement_if_positive("u1", "later") is None
    assert client.docs["u1"]["lastSpinAt"] == "now"


def test_firestore_decrement_missing_user(firestore_store) -> None:
    store, _ = firestore_store
    with pytest.raises(NotFound):
        store.decrement_if_positive("ghost", "now")


def test_firestore_merge_and_lookup(firestore_store) -> None:
    store, client = firestore_store
    store.merge("u1", {"isPremium": True, "stripeCustomerId": "cus_1"})
    store.merge("u1", {"subscriptionStatus": "active"})
    assert client.docs["u1"] == {"isPremium": True, "stripeCustomerId": "cus_1", "subscriptionStatus": "active"}
    assert store.find_by_field("stripeCustomerId", "cus_1") == ["u1"]
    assert store.find_by_field("stripeCustomerId", "cus_2") == []
    assert store.get("u1").is_premium is True
    assert store.get("nobody") is None


def test_firestore_api_errors_become_store_errors(firestore_store) -> None:
    store, client = firestore_store

    def boom(name):
        raise api_exceptions.ServiceUnavailable("firestore down")

    client.collection = boom  # type: ignore[assignment]
    with pytest.raises(StoreError):
        store.get("u1")
    with pytest.raises(StoreError):
        store.ping()


def test_in_memory_lookup_and_limit() -> None:
    store = InMemoryQuotaStore()
    store.merge("a", {"stripeCustomerId": "cus_dup"})
    store.merge("b", {"stripeCustomerId": "cus_dup"})
    store.merge("c", {"stripeCustomerId": "cus_dup"})
    assert len(store.find_by_field("stripeCustomerId", "cus_dup", limit=2)) == 2
    assert store.ping() is True


def test_negative_stored_counter_reads_as_zero() -> None:
    store = InMemoryQuotaStore()
    store.merge("legacy", {"spinsRemaining": -2})
    assert store.get("legacy").spins_remaining == 0
    assert store.decrement_if_positive("legacy", "now") is None


def test_firestore_transactions_go_through_sdk_decorator(monkeypatch) -> None:
    client = FakeFirestore()
    store = FirestoreQuotaStore(client=client, collection="users")
    wrapped: list = []

    def transactional(fn):
        wrapped.append(fn)
        return lambda transaction: fn(transaction)

    monkeypatch.setattr(store._firestore, "transactional", transactional)

    record, created = store.get_or_create("u1", {"spinsRemaining": 3})
    assert created is True
    assert store.decrement_if_positive("u1", "now") == 2
    assert len(wrapped) == 2
    assert client.docs["u1"]["spinsRemaining"] == 2

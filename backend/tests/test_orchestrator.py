from __future__ import annotations

import random
from unittest.mock import MagicMock

import pytest

from errors import QuotaExhausted
from fakes import StubFinder
from models import Candidate, Location, PickRequest
from services.orchestrator import DinnerPicker, NoCandidates
from services.quota import QuotaGate
from services.quota_store import InMemoryQuotaStore


def _request(user: str = "u") -> PickRequest:
    return PickRequest(user_id=user, location=Location(lat=40.0, lon=-74.0), radius_miles=5, cuisine="Italian")


def test_pick_passes_search_parameters_through() -> None:
    finder = StubFinder([Candidate(name="Solo")])
    picker = DinnerPicker(QuotaGate(InMemoryQuotaStore()), finder, MagicMock(), rng=random.Random(0))

    result = picker.pick(_request())

    assert result.restaurant.name == "Solo"
    assert result.spins_remaining == 2
    assert result.candidate_count == 1
    location, radius, cuisine = finder.calls[0]
    assert (location.lat, location.lon, radius, cuisine) == (40.0, -74.0, 5, "Italian")


def test_no_candidates_does_not_consume() -> None:
    store = InMemoryQuotaStore()
    picker = DinnerPicker(QuotaGate(store), StubFinder([]), MagicMock())
    with pytest.raises(NoCandidates):
        picker.pick(_request())
    assert store.get("u").spins_remaining == 3


def test_denied_before_search() -> None:
    store = InMemoryQuotaStore()
    store.merge("u", {"spinsRemaining": 0})
    finder = StubFinder([Candidate(name="X")])
    with pytest.raises(QuotaExhausted):
        DinnerPicker(QuotaGate(store), finder, MagicMock()).pick(_request())
    assert finder.calls == []


def test_lost_race_still_returns_pick() -> None:
    store = InMemoryQuotaStore()
    gate = QuotaGate(store)

    class RacingFinder(StubFinder):
        def find(self, location, radius_miles, cuisine=None):
            # another request spends the last spin between check and consume
            store.merge("u", {"spinsRemaining": 0})
            return super().find(location, radius_miles, cuisine)

    result = DinnerPicker(gate, RacingFinder([Candidate(name="Late")]), MagicMock()).pick(_request())
    assert result.restaurant.name == "Late"
    assert result.spins_remaining == 0
    assert store.get("u").spins_remaining == 0


def test_details_delegates_to_enricher() -> None:
    enricher = MagicMock()
    DinnerPicker(QuotaGate(InMemoryQuotaStore()), StubFinder(), enricher).details("Solo")
    enricher.enrich.assert_called_once_with("Solo")

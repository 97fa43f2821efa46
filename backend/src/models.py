"""Data models for the dinner picker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

NO_CUISINE_FILTER = "Anything"


@dataclass
class Location:
    lat: float
    lon: float


@dataclass
class Candidate:
    name: str
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    place_id: Optional[str] = None


@dataclass
class SearchOutcome:
    """Result of a places search; ``reason`` is for logs only."""

    candidates: List[Candidate] = field(default_factory=list)
    reason: str = "ok"  # ok | zero_results | provider_status | transport
    detail: Optional[str] = None


class DetailRecord(BaseModel):
    address: str = Field(..., description="The address of the restaurant.")
    cuisineType: str = Field(..., description="The cuisine type of the restaurant.")
    customerRating: str = Field(..., description="The customer rating of the restaurant.")
    recentReview: str = Field(..., description="A recent review of the restaurant.")


@dataclass
class QuotaRecord:
    user_id: str
    spins_remaining: int = 0
    is_premium: bool = False
    last_spin_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, user_id: str, data: Optional[Dict[str, Any]]) -> "QuotaRecord":
        data = dict(data or {})
        remaining = data.pop("spinsRemaining", 0)
        try:
            remaining = max(int(remaining or 0), 0)
        except (TypeError, ValueError):
            remaining = 0
        return cls(
            user_id=user_id,
            spins_remaining=remaining,
            is_premium=bool(data.pop("isPremium", False)),
            last_spin_at=data.pop("lastSpinAt", None),
            extra=data,
        )


@dataclass
class QuotaDecision:
    allowed: bool
    remaining: int
    is_premium: bool = False


@dataclass
class ConsumeResult:
    remaining: int
    is_premium: bool = False


@dataclass
class CheckoutSession:
    session_id: str
    user_id: str
    url: Optional[str] = None


@dataclass
class EventResult:
    event_type: str
    handled: bool
    user_id: Optional[str] = None
    note: Optional[str] = None


@dataclass
class PickRequest:
    user_id: str
    location: Location
    radius_miles: float = 5.0
    cuisine: Optional[str] = NO_CUISINE_FILTER


@dataclass
class PickResult:
    restaurant: Candidate
    spins_remaining: int
    is_premium: bool = False
    candidate_count: int = 0

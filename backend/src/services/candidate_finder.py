from __future__ import annotations

from typing import List, Optional

from loguru import logger

from config import Configuration
from errors import TransportFailure
from models import NO_CUISINE_FILTER, Candidate, Location, SearchOutcome
from services.places import PlacesClient, parse_candidates
from utils import miles_to_meters

OK_STATUSES = {"OK", "ZERO_RESULTS"}


def normalize_cuisine(cuisine: Optional[str]) -> Optional[str]:
    """Return the outbound keyword, or None when no filter applies."""
    if cuisine is None:
        return None
    value = cuisine.strip()
    if not value or value.lower() == NO_CUISINE_FILTER.lower():
        return None
    return value


class CandidateFinder:
    """Finds restaurants near a location.

    ``find`` never raises for upstream problems: provider error statuses,
    network failures and malformed payloads all come back as an empty list.
    The reason is kept on ``SearchOutcome`` for logging. A missing API key is
    a configuration error and is raised before any request is made.
    """

    def __init__(self, cfg: Configuration, client: Optional[PlacesClient] = None) -> None:
        self.cfg = cfg
        self._client = client

    @property
    def client(self) -> PlacesClient:
        if self._client is None:
            self._client = PlacesClient(self.cfg)
        return self._client

    def search(
        self,
        location: Location,
        radius_miles: float,
        cuisine: Optional[str] = None,
    ) -> SearchOutcome:
        self.cfg.require_places()
        if radius_miles is None or radius_miles <= 0:
            raise ValueError("radius must be a positive number of miles")

        keyword = normalize_cuisine(cuisine)
        radius_m = miles_to_meters(radius_miles)
        try:
            payload = self.client.nearby_search(location, radius_m=radius_m, keyword=keyword)
        except TransportFailure as exc:
            return SearchOutcome(reason="transport", detail=str(exc))

        status = str(payload.get("status") or "")
        if status not in OK_STATUSES:
            return SearchOutcome(
                reason="provider_status",
                detail=payload.get("error_message") or status or "missing status",
            )
        results = payload.get("results")
        if not isinstance(results, list):
            results = []
        candidates = parse_candidates(results)
        if not candidates:
            return SearchOutcome(reason="zero_results")
        return SearchOutcome(candidates=candidates)

    def find(
        self,
        location: Location,
        radius_miles: float,
        cuisine: Optional[str] = None,
    ) -> List[Candidate]:
        outcome = self.search(location, radius_miles, cuisine)
        if outcome.reason in ("transport", "provider_status"):
            logger.warning("places search degraded to empty reason={} detail={}", outcome.reason, outcome.detail)
        else:
            logger.info(
                "places search lat={} lon={} radius_mi={} cuisine={} found={}",
                location.lat,
                location.lon,
                radius_miles,
                cuisine or NO_CUISINE_FILTER,
                len(outcome.candidates),
            )
        return outcome.candidates

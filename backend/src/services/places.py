from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from config import Configuration
from errors import TransportFailure
from models import Candidate, Location

NEARBY_SEARCH_PATH = "/nearbysearch/json"
PLACE_TYPE = "restaurant"


class PlacesClient:
    """Thin client for the Google Places Nearby Search endpoint."""

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.places_base_url.rstrip("/")
        self.session = session or requests.Session()

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base}{path}"
        headers = {"Accept": "application/json"}
        params = {**params, "key": self.cfg.google_places_api_key}
        try:
            resp = self.session.get(url, headers=headers, params=params, timeout=self.cfg.places_timeout)
        except requests.RequestException as exc:  # network error
            raise TransportFailure(f"request error: {exc}") from exc

        if not resp.ok:
            snippet = resp.text[:300]
            raise TransportFailure(f"upstream {resp.status_code}: {snippet}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportFailure("invalid json response") from exc
        if not isinstance(payload, dict):
            raise TransportFailure("unexpected response shape")
        return payload

    def nearby_search(
        self,
        location: Location,
        *,
        radius_m: float,
        keyword: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "location": f"{location.lat},{location.lon}",
            "radius": f"{radius_m:.2f}",
            "type": PLACE_TYPE,
        }
        if keyword:
            params["keyword"] = keyword
        return self._get(NEARBY_SEARCH_PATH, params)


def parse_candidates(results: List[dict]) -> List[Candidate]:
    out: list[Candidate] = []
    for item in results or []:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not name:
            continue
        rating = item.get("rating")
        count = item.get("user_ratings_total")
        out.append(
            Candidate(
                name=str(name),
                rating=float(rating) if isinstance(rating, (int, float)) else None,
                rating_count=int(count) if isinstance(count, (int, float)) else None,
                place_id=(str(item["place_id"]) if item.get("place_id") else None),
            )
        )
    return out

from __future__ import annotations

import random
from typing import Optional

from loguru import logger

from errors import DinnerPickerError, QuotaExhausted
from models import DetailRecord, PickRequest, PickResult
from services.candidate_finder import CandidateFinder
from services.details import DetailEnricher
from services.picker import pick
from services.quota import QuotaGate

NO_RESULTS_TITLE = "No Restaurants Found"
NO_RESULTS_HINT = "Try expanding your search radius or changing the cuisine."
OUT_OF_SPINS_TITLE = "Free Spins Used"
OUT_OF_SPINS_HINT = "You have used all your free spins. Please upgrade to premium for unlimited picks."


class NoCandidates(DinnerPickerError):
    def __init__(self, message: str = NO_RESULTS_HINT) -> None:
        super().__init__(message)


class DinnerPicker:
    """check quota -> find -> pick -> consume; details are a separate call."""

    def __init__(
        self,
        gate: QuotaGate,
        finder: CandidateFinder,
        enricher: DetailEnricher,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.gate = gate
        self.finder = finder
        self.enricher = enricher
        self.rng = rng

    def pick(self, req: PickRequest) -> PickResult:
        decision = self.gate.can_use(req.user_id)
        if not decision.allowed:
            raise QuotaExhausted(req.user_id, OUT_OF_SPINS_HINT)

        candidates = self.finder.find(req.location, req.radius_miles, req.cuisine)
        if not candidates:
            # nothing found, nothing charged
            raise NoCandidates()

        choice = pick(candidates, self.rng)

        if decision.is_premium:
            remaining, is_premium = decision.remaining, True
        else:
            try:
                consumed = self.gate.consume(req.user_id)
                remaining, is_premium = consumed.remaining, consumed.is_premium
            except QuotaExhausted:
                # a concurrent pick spent the last spin after our check
                logger.warning("spin race lost user={}; returning pick uncharged", req.user_id)
                remaining, is_premium = 0, False

        logger.info(
            "picked user={} restaurant={} from={} remaining={}",
            req.user_id,
            choice.name,
            len(candidates),
            remaining,
        )
        return PickResult(
            restaurant=choice,
            spins_remaining=remaining,
            is_premium=is_premium,
            candidate_count=len(candidates),
        )

    def details(self, restaurant_name: str) -> DetailRecord:
        return self.enricher.enrich(restaurant_name)

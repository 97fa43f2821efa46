"""Spin quota gate.

``can_use`` and ``consume`` are split so a spin is only charged after the
guarded action succeeds. Two concurrent requests from one user can both
pass ``can_use`` before either consumes; the conditional decrement keeps
the counter at or above zero, and the second request may get one spin past
the allotment. Quota deters abuse, it is not a hard resource limit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from errors import NotFound, QuotaExhausted
from models import ConsumeResult, QuotaDecision, QuotaRecord
from services.quota_store import QuotaStore
from utils import utc_now_iso

DEFAULT_FREE_SPINS = 3


def _require_user(user_id: str) -> str:
    if not user_id or not str(user_id).strip():
        raise ValueError("User ID is required")
    return str(user_id).strip()


class QuotaGate:
    def __init__(self, store: QuotaStore, free_spins: int = DEFAULT_FREE_SPINS) -> None:
        self.store = store
        self.free_spins = free_spins

    def can_use(self, user_id: str) -> QuotaDecision:
        user_id = _require_user(user_id)
        record, created = self.store.get_or_create(
            user_id,
            {"spinsRemaining": self.free_spins, "createdAt": utc_now_iso()},
        )
        if created:
            logger.info("created quota record user={} spins={}", user_id, record.spins_remaining)
        if record.is_premium:
            return QuotaDecision(allowed=True, remaining=record.spins_remaining, is_premium=True)
        return QuotaDecision(allowed=record.spins_remaining > 0, remaining=record.spins_remaining)

    def consume(self, user_id: str, now: Optional[datetime] = None) -> ConsumeResult:
        user_id = _require_user(user_id)
        record = self.status(user_id)
        if record.is_premium:
            return ConsumeResult(remaining=record.spins_remaining, is_premium=True)

        at = now.isoformat() if now else utc_now_iso()
        remaining = self.store.decrement_if_positive(user_id, at)
        if remaining is None:
            logger.info("quota exhausted user={}", user_id)
            raise QuotaExhausted(user_id)
        logger.debug("spin consumed user={} remaining={}", user_id, remaining)
        return ConsumeResult(remaining=remaining)

    def status(self, user_id: str) -> QuotaRecord:
        user_id = _require_user(user_id)
        record = self.store.get(user_id)
        if record is None:
            raise NotFound(f"User {user_id} not found")
        return record

"""Utility helpers for the dinner picker backend."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

METERS_PER_MILE = 1609.34


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def strip_thinking_tokens(text: str) -> str:
    """Remove <think>...</think> blocks if present."""
    if not text:
        return text
    while True:
        start = text.find("<think>")
        if start == -1:
            break
        end = text.find("</think>", start)
        if end == -1:
            break
        text = text[:start] + text[end + len("</think>") :]
    return text


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def epoch_to_iso(seconds: Optional[int]) -> Optional[str]:
    """Convert epoch seconds (as sent by Stripe) to an ISO-8601 UTC string."""
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError):
        return None

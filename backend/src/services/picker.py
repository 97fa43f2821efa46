from __future__ import annotations

import random
from typing import Optional, Sequence

from models import Candidate


def pick(candidates: Sequence[Candidate], rng: Optional[random.Random] = None) -> Candidate:
    """Uniform random choice; duplicates count once per occurrence."""
    if not candidates:
        raise ValueError("cannot pick from an empty candidate list")
    return (rng or random).choice(list(candidates))

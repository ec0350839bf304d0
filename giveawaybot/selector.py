"""Winner selection."""

from __future__ import annotations

import random
import secrets
from typing import Iterable, List, Optional

from .models import unique_ids


def select_winners(
    participants: Iterable[str], count: int, *, rng: Optional[random.Random] = None
) -> List[str]:
    """Draw up to ``count`` distinct winners uniformly without replacement.

    Duplicate ids in ``participants`` are collapsed first, so a user can never
    be drawn twice. Returns ``min(count, len(unique participants))`` ids.
    """
    population = unique_ids(participants)
    winners_count = min(max(int(count), 0), len(population))
    if winners_count == 0:
        return []
    rng = rng or secrets.SystemRandom()
    return rng.sample(population, winners_count)

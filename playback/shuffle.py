"""Shuffle order generation."""

import random
from typing import List, Optional


def generate(n: int, rng: Optional[random.Random] = None) -> List[int]:
    """Return a uniformly random permutation of ``range(n)`` (Fisher-Yates)."""
    if n <= 0:
        return []
    rng = rng or random
    order = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


class ShuffleIndexGenerator:
    """Owns the random source used for shuffle orders.

    Pass a ``seed`` to get reproducible orders (tests, debugging).
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def generate(self, n: int) -> List[int]:
        return generate(n, self._rng)

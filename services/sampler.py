import random
from typing import Callable, List, Optional, Sequence, TypeVar

from core.config import settings

T = TypeVar("T")


def weighted_sample(
    population: Sequence[T],
    k: int,
    weight: Callable[[T], float] = lambda item: 1.0,
    rng: Optional[random.Random] = None,
    min_weight: Optional[float] = None,
) -> List[T]:
    """
    Draw ``k`` distinct items from ``population`` without replacement, each draw
    proportional to ``weight(item)``.

    Weights below ``min_weight`` (default SAMPLER_MIN_WEIGHT) are raised to it, so a
    zero-weight item is unlikely but never impossible. When ``k`` covers the whole
    population it is returned as-is; callers pass pools that are already shuffled.
    """
    items = list(population)
    if k <= 0:
        return []
    if k >= len(items):
        return items

    rng = rng or random.Random()
    floor = settings.SAMPLER_MIN_WEIGHT if min_weight is None else min_weight

    pool = []
    for item in items:
        w = weight(item)
        # NaN compares False and is floored too
        pool.append((item, w if w > floor else floor))

    chosen = []
    for _ in range(k):
        total = sum(w for _, w in pool)
        r = rng.random() * total
        running = 0.0
        index = len(pool) - 1
        for i, (_, w) in enumerate(pool):
            running += w
            if running >= r:
                index = i
                break
        chosen.append(pool.pop(index)[0])

    return chosen

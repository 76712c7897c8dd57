import random
from collections import Counter

from services.sampler import weighted_sample


def test_returns_exactly_k_distinct_items():
    population = list(range(50))
    chosen = weighted_sample(population, 10, rng=random.Random(1))

    assert len(chosen) == 10
    assert len(set(chosen)) == 10
    assert set(chosen) <= set(population)


def test_k_at_or_above_population_returns_population_unchanged():
    population = [5, 3, 9]
    assert weighted_sample(population, 3) == population
    assert weighted_sample(population, 10) == population


def test_non_positive_k_returns_nothing():
    assert weighted_sample([1, 2, 3], 0) == []
    assert weighted_sample([1, 2, 3], -4) == []


def test_empty_population():
    assert weighted_sample([], 5) == []


def test_seeded_rng_is_deterministic():
    population = list(range(30))
    weight = lambda item: item % 7 + 1  # noqa: E731

    first = weighted_sample(population, 8, weight=weight, rng=random.Random(2024))
    second = weighted_sample(population, 8, weight=weight, rng=random.Random(2024))

    assert first == second


def test_zero_and_negative_weights_remain_selectable():
    weights = {"a": 0, "b": -5, "c": float("nan")}
    seen = set()
    rng = random.Random(7)
    for _ in range(200):
        seen.update(weighted_sample(list(weights), 1, weight=weights.get, rng=rng))

    assert seen == {"a", "b", "c"}


def test_heavier_items_are_drawn_more_often():
    rng = random.Random(99)
    counts = Counter()
    for _ in range(2000):
        counts.update(weighted_sample(["light", "heavy"], 1, weight=lambda i: 1 if i == "light" else 9, rng=rng))

    assert counts["heavy"] > counts["light"] * 4


def test_custom_floor():
    rng = random.Random(3)
    counts = Counter()
    for _ in range(500):
        counts.update(weighted_sample(["zero", "one"], 1, weight=lambda i: 0 if i == "zero" else 1, rng=rng, min_weight=1.0))

    # Floor of 1.0 makes both items equally likely
    assert 150 < counts["zero"] < 350

"""
Injectable randomness.

Every roll and weighted pick in the engine goes through an object with
the ``random.Random`` surface the engine uses (``random``, ``choice``).
Production wiring passes ``random.Random()``; tests pass a seeded
instance or a fixed-sequence stub.
"""

from __future__ import annotations

import random
from typing import Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class RandomSource(Protocol):
    def random(self) -> float:
        """Float in [0.0, 1.0)."""
        ...

    def choice(self, seq: Sequence[T]) -> T:
        ...


def create_rng(seed: int | None = None) -> random.Random:
    return random.Random(seed)


def clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def roll(rng: RandomSource, percent: float) -> bool:
    """Percent chance in 0..100. 100 always passes, 0 never does."""
    if percent <= 0:
        return False
    if percent >= 100:
        return True
    return rng.random() * 100 < percent


def weighted_choice(rng: RandomSource, items: Sequence[T], weights: Sequence[float]) -> T:
    """
    Pick one item proportionally to its weight.

    Falls back to a uniform pick when every weight is zero.
    """
    if not items:
        raise ValueError("weighted_choice needs at least one item")
    total = sum(max(w, 0.0) for w in weights)
    if total <= 0:
        return rng.choice(items)
    target = rng.random() * total
    cumulative = 0.0
    for item, weight in zip(items, weights):
        cumulative += max(weight, 0.0)
        if target < cumulative:
            return item
    return items[-1]

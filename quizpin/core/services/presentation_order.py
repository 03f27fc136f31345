"""Per-session randomized question order."""

from __future__ import annotations

import random

from quizpin.core.errors import InvariantViolation, ValidationError


def generate_presentation_order(count: int, rng: random.Random | None = None) -> list[int]:
    """Return a uniformly shuffled permutation of ``range(count)``.

    ``order[slot]`` is the canonical question index shown at ``slot``. Without
    an explicit ``rng`` every call draws from a freshly OS-seeded generator, so
    two sessions never share a shuffle seed.
    """
    if count < 0:
        raise ValidationError("Question count cannot be negative.")
    rng = rng or random.Random()
    order = list(range(count))
    # Fisher-Yates, walking down from the last slot
    for i in range(count - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    ensure_permutation(order, count)
    return order


def ensure_permutation(order: list[int], count: int) -> None:
    if len(order) != count or sorted(order) != list(range(count)):
        raise InvariantViolation(f"Presentation order {order!r} is not a permutation of 0..{count - 1}.")


def invert_order(order: list[int]) -> list[int]:
    """Map canonical index -> presentation slot."""
    inverse = [0] * len(order)
    for slot, canonical_index in enumerate(order):
        inverse[canonical_index] = slot
    return inverse

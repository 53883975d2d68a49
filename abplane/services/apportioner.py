"""
Integer weight apportionment for variant editors.

A variant set is only valid when its weights sum to exactly ``TOTAL_WEIGHT``.
Editors keep it that way by passing the full weight list through one of the two
functions below after every change:

* ``rebalance_even`` when the set changes shape (variant added, removed, reset);
* ``rebalance_locked`` when the operator types a value into one variant.

Both are pure: the input is never mutated and a new list of ints is returned.
Proportional shares are computed with ``Fraction`` so that fractional
remainders are compared exactly (largest-remainder / Hamilton method, ties
going to the lower index).
"""

import math
from fractions import Fraction
from typing import Any, List, Sequence

TOTAL_WEIGHT = 100


def coerce_weight(value: Any) -> Fraction:
    """Negative, non-numeric, NaN and infinite values count as zero."""
    try:
        number = Fraction(value)
    except (TypeError, ValueError, ZeroDivisionError, OverflowError):
        return Fraction(0)
    return number if number > 0 else Fraction(0)


def clamp_weight(value: Any) -> int:
    """Round half-up to an int and clamp to ``[0, TOTAL_WEIGHT]``."""
    rounded = math.floor(coerce_weight(value) + Fraction(1, 2))
    return min(TOTAL_WEIGHT, rounded)


def apportion(weights: Sequence[Fraction], budget: int) -> List[int]:
    """
    Split ``budget`` units across ``weights`` proportionally.

    Every entry gets the floor of its exact share, then the units lost to
    flooring go one each to the entries with the largest fractional remainder.
    An all-zero input is split evenly. The result always sums to ``budget``.
    """
    if not weights:
        return []
    if budget <= 0:
        return [0] * len(weights)

    total = sum(weights, Fraction(0))
    if total == 0:
        weights = [Fraction(1)] * len(weights)
        total = Fraction(len(weights))

    shares = [weight * budget / total for weight in weights]
    floors = [math.floor(share) for share in shares]

    # Sum of remainders is < len(weights), so each index gets at most one unit.
    leftover = budget - sum(floors)
    by_remainder = sorted(
        range(len(shares)), key=lambda i: (-(shares[i] - floors[i]), i)
    )
    for index in by_remainder[:leftover]:
        floors[index] += 1

    return floors


def rebalance_even(weights: Sequence[Any]) -> List[int]:
    """
    Rescale ``weights`` so they sum to ``TOTAL_WEIGHT``, keeping their proportions.

    >>> rebalance_even([50, 50])
    [50, 50]
    >>> rebalance_even([1, 1, 1])
    [34, 33, 33]
    """
    if not weights:
        return []
    if len(weights) == 1:
        return [TOTAL_WEIGHT]

    return apportion([coerce_weight(w) for w in weights], TOTAL_WEIGHT)


def rebalance_locked(weights: Sequence[Any], locked_index: int, new_value: Any) -> List[int]:
    """
    Pin ``weights[locked_index]`` to ``new_value`` and spread the rest of the
    budget over the other entries in proportion to their current weights.

    With a single entry there is nothing to absorb the remainder, so the
    result is just ``[clamp_weight(new_value)]``; callers must enforce the
    two-variant minimum before saving.

    >>> rebalance_locked([50, 50], 0, 70)
    [70, 30]
    """
    size = len(weights)
    if not 0 <= locked_index < size:
        raise IndexError(f"locked_index {locked_index} out of range for {size} weights")

    target = clamp_weight(new_value)
    others = [i for i in range(size) if i != locked_index]
    if not others:
        return [target]

    redistributed = apportion(
        [coerce_weight(weights[i]) for i in others], TOTAL_WEIGHT - target
    )

    result = [0] * size
    result[locked_index] = target
    for index, weight in zip(others, redistributed):
        result[index] = weight

    return result

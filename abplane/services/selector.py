import secrets
from typing import Callable, Sequence, Tuple

# draw(n) must return a uniformly distributed int in [0, n).
Draw = Callable[[int], int]

# FNV-1a, 64-bit
FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
MASK_64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: str) -> int:
    h = FNV64_OFFSET_BASIS
    for byte in data.encode("utf-8"):
        h ^= byte
        h = (h * FNV64_PRIME) & MASK_64
    return h


def hash_draw(experiment_id: str, user_id: str) -> Draw:
    """
    Deterministic draw for the ``hash`` strategy: the same experiment and user
    always land on the same point, ``fnv1a_64("<experiment_id>:<user_id>") % n``.
    """
    point = fnv1a_64(f"{experiment_id}:{user_id}")

    def draw(n: int) -> int:
        return point % n

    return draw


def select_variant(
    variants: Sequence[Tuple[str, int]], draw: Draw = secrets.randbelow
) -> str:
    """
    Pick a variant id with probability proportional to its weight.

    ``variants`` is walked in the order given, and that order must be the same
    one the weights are summed in. Negative weights count as zero; when every
    weight is zero the pick is uniform over all variants.

    The default ``draw`` is backed by the OS CSPRNG; tests pass a seeded
    ``random.Random(...).randrange``.
    """
    if not variants:
        raise ValueError("select_variant needs at least one variant")

    weights = [max(0, int(weight)) for _, weight in variants]
    total = sum(weights)

    if total == 0:
        return variants[draw(len(variants))][0]

    threshold = draw(total)
    cumulative = 0
    for (variant_id, _), weight in zip(variants, weights):
        cumulative += weight
        if threshold < cumulative:
            return variant_id

    raise ValueError(f"draw returned {threshold}, outside [0, {total})")

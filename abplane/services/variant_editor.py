"""
Editing operations over a draft variant set.

These are what an editing surface calls on every change before it lets the
operator save. Each one returns a new list and routes weights through the
apportioner, so a draft produced here always sums to 100 once it holds two
or more variants.
"""

import re
import string
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

from abplane.core.errors import ValidationError
from abplane.services.apportioner import (
    TOTAL_WEIGHT,
    clamp_weight,
    rebalance_even,
    rebalance_locked,
)

MIN_VARIANTS = 2
MAX_KEY_LENGTH = 32
KEY_PATTERN = re.compile(r"^[A-Z0-9_]+$")


@dataclass(frozen=True)
class VariantDraft:
    key: str
    weight: int
    id: Optional[str] = None


def normalize_key(key: str) -> str:
    return key.strip().upper()


def next_variant_key(existing_keys: Iterable[str]) -> str:
    """First unused letter A-Z, then ``VAR_<n>``."""
    used = {normalize_key(k) for k in existing_keys}
    for letter in string.ascii_uppercase:
        if letter not in used:
            return letter

    n = len(used) + 1
    while f"VAR_{n}" in used:
        n += 1
    return f"VAR_{n}"


def _with_weights(drafts: Sequence[VariantDraft], weights: Sequence[int]) -> List[VariantDraft]:
    return [replace(d, weight=w) for d, w in zip(drafts, weights)]


def rebalance(drafts: Sequence[VariantDraft]) -> List[VariantDraft]:
    return _with_weights(drafts, rebalance_even([d.weight for d in drafts]))


def add_variant(drafts: Sequence[VariantDraft], key: Optional[str] = None) -> List[VariantDraft]:
    new_key = normalize_key(key) if key else next_variant_key(d.key for d in drafts)
    seed_weight = clamp_weight(TOTAL_WEIGHT / (len(drafts) + 1))
    return rebalance([*drafts, VariantDraft(key=new_key, weight=seed_weight)])


def remove_variant(drafts: Sequence[VariantDraft], index: int) -> List[VariantDraft]:
    remaining = [d for i, d in enumerate(drafts) if i != index]
    return rebalance(remaining)


def set_weight(drafts: Sequence[VariantDraft], index: int, value) -> List[VariantDraft]:
    return _with_weights(drafts, rebalance_locked([d.weight for d in drafts], index, value))


def rename_variant(drafts: Sequence[VariantDraft], index: int, key: str) -> List[VariantDraft]:
    return [
        replace(d, key=normalize_key(key)) if i == index else d
        for i, d in enumerate(drafts)
    ]


def validate_for_save(drafts: Sequence[VariantDraft]) -> List[VariantDraft]:
    """
    Normalize keys and check a draft set is savable.

    Raises ValidationError on: fewer than two variants, empty/malformed or
    duplicate keys (compared after uppercasing), weights that are not ints in
    ``[0, 100]``, or a total other than 100.
    """
    if len(drafts) < MIN_VARIANTS:
        raise ValidationError(f"Provide at least {MIN_VARIANTS} variants.")

    normalized = []
    seen = set()
    for draft in drafts:
        key = normalize_key(draft.key)
        if not key:
            raise ValidationError("Variant key is required.")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Variant key {key!r} exceeds {MAX_KEY_LENGTH} characters.")
        if not KEY_PATTERN.match(key):
            raise ValidationError(
                f"Variant key {key!r} may only contain A-Z, 0-9 and underscores."
            )
        if key in seen:
            raise ValidationError(f'Duplicate key "{key}".')
        seen.add(key)

        weight = draft.weight
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise ValidationError(f"Weight of {key} must be an integer.")
        if not 0 <= weight <= TOTAL_WEIGHT:
            raise ValidationError(f"Weight of {key} must be between 0 and {TOTAL_WEIGHT}.")

        normalized.append(replace(draft, key=key))

    total = sum(d.weight for d in normalized)
    if total != TOTAL_WEIGHT:
        raise ValidationError(f"Variant weights must sum to {TOTAL_WEIGHT}, got {total}.")

    return normalized

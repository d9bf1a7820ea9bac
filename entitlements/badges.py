"""
Badge rank model.

Membership badges form a total order:

    Bronze < Silver < Gold < Platinum

BADGE_RANK is the only place that ordering is defined. Every other module
compares badges through rank()/compare() rather than keeping its own table.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Union


class Badge(str, Enum):
    """Membership tiers."""
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


class Comparison(str, Enum):
    LOWER = "lower"
    EQUAL = "equal"
    HIGHER = "higher"


BADGE_RANK = {
    Badge.BRONZE: 0,
    Badge.SILVER: 1,
    Badge.GOLD: 2,
    Badge.PLATINUM: 3,
}

LOWEST_BADGE = Badge.BRONZE

BadgeLike = Union[Badge, str, None]


def normalize_badge(value: BadgeLike) -> Badge:
    """
    Coerce a stored badge value into a Badge.

    Matching is case-insensitive ("silver" and "Silver" are the same tier).
    Absent or unknown values resolve to the lowest tier: a record without a
    badge belongs to a principal who has not upgraded yet.
    """
    if isinstance(value, Badge):
        return value
    if value is None:
        return LOWEST_BADGE
    normalized = str(value).strip().lower()
    for badge in Badge:
        if badge.value.lower() == normalized:
            return badge
    return LOWEST_BADGE


def parse_badge(value: BadgeLike) -> Optional[Badge]:
    """Strict variant of normalize_badge: None when the value is not a known tier."""
    if isinstance(value, Badge):
        return value
    if value is None:
        return None
    normalized = str(value).strip().lower()
    for badge in Badge:
        if badge.value.lower() == normalized:
            return badge
    return None


def rank(badge: BadgeLike) -> int:
    return BADGE_RANK[normalize_badge(badge)]


def compare(a: BadgeLike, b: BadgeLike) -> Comparison:
    """Compare two badges by rank: LOWER means a ranks below b."""
    rank_a = rank(a)
    rank_b = rank(b)
    if rank_a < rank_b:
        return Comparison.LOWER
    if rank_a > rank_b:
        return Comparison.HIGHER
    return Comparison.EQUAL


def is_lowest(badge: BadgeLike) -> bool:
    return rank(badge) == BADGE_RANK[LOWEST_BADGE]


def meets(badge: BadgeLike, required: BadgeLike) -> bool:
    """True if badge is at least the required tier."""
    return rank(badge) >= rank(required)


def highest(badges: Iterable[BadgeLike]) -> Badge:
    """Highest-ranked badge in badges; the lowest tier for an empty iterable."""
    best = LOWEST_BADGE
    for value in badges:
        candidate = normalize_badge(value)
        if rank(candidate) > rank(best):
            best = candidate
    return best


def ordered_badges() -> list[Badge]:
    return sorted(Badge, key=lambda b: BADGE_RANK[b])

from __future__ import annotations

import itertools
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .cards import Card

CATEGORY_NAMES = (
    "high_card",
    "pair",
    "two_pair",
    "three_of_a_kind",
    "straight",
    "flush",
    "full_house",
    "four_of_a_kind",
    "straight_flush",
)

Score = Tuple[int, List[int]]


def evaluate_best(cards: Sequence[Card]) -> Score:
    """Return a strength tuple for the best 5 of 5-7 cards. Higher is better."""
    if len(cards) < 5:
        raise ValueError("At least five cards are required")
    best: Optional[Score] = None
    for combo in itertools.combinations(cards, 5):
        rank = _evaluate_five(combo)
        if best is None or rank > best:
            best = rank
    assert best is not None
    return best


def describe_rank(score: Score) -> str:
    return CATEGORY_NAMES[score[0]]


def _evaluate_five(cards: Sequence[Card]) -> Score:
    ranks = sorted((card.rank for card in cards), reverse=True)
    is_flush = len({card.suit for card in cards}) == 1
    straight_high = _straight_high(ranks)

    counts = Counter(ranks)
    ordered_counts = sorted(counts.items(), key=lambda x: (x[1], x[0]), reverse=True)
    count_values = sorted(counts.values(), reverse=True)

    if straight_high and is_flush:
        return (8, [straight_high])
    if count_values[0] == 4:
        four_rank = ordered_counts[0][0]
        kicker = max(r for r, _ in ordered_counts if r != four_rank)
        return (7, [four_rank, kicker])
    if count_values[0] == 3 and count_values[1] == 2:
        return (6, [ordered_counts[0][0], ordered_counts[1][0]])
    if is_flush:
        return (5, ranks)
    if straight_high:
        return (4, [straight_high])
    if count_values[0] == 3:
        return (3, [r for r, _ in ordered_counts])
    if count_values[0] == 2 and count_values[1] == 2:
        kicker = max(r for r, c in ordered_counts if c == 1)
        return (2, [ordered_counts[0][0], ordered_counts[1][0], kicker])
    if count_values[0] == 2:
        return (1, [r for r, _ in ordered_counts])
    return (0, ranks)


def _straight_high(ranks: Iterable[int]) -> Optional[int]:
    distinct = set(ranks)
    if 14 in distinct:  # Ace low
        distinct.add(1)
    for high in range(14, 4, -1):
        if all(r in distinct for r in range(high - 4, high + 1)):
            return high
    return None


# Direct evaluator -------------------------------------------------------
#
# hand_score() reaches the same ordering as evaluate_best() without walking
# the 21 five-card subsets. It packs (category, kickers...) into one int so
# enumeration loops can compare plain integers.


def hand_score(cards: Sequence[Card]) -> int:
    if len(cards) < 5:
        raise ValueError("At least five cards are required")
    counts = Counter(card.rank for card in cards)
    by_suit: Dict[str, List[int]] = {}
    for card in cards:
        by_suit.setdefault(card.suit, []).append(card.rank)

    flush_ranks: Optional[List[int]] = None
    for suited in by_suit.values():
        if len(suited) >= 5:
            flush_ranks = sorted(suited, reverse=True)
            break

    if flush_ranks is not None:
        straight_flush = _straight_high(flush_ranks)
        if straight_flush:
            return _pack(8, [straight_flush])

    distinct = sorted(counts, reverse=True)
    quads = [r for r in distinct if counts[r] == 4]
    trips = [r for r in distinct if counts[r] == 3]
    pairs = [r for r in distinct if counts[r] == 2]

    if quads:
        kicker = max(r for r in distinct if r != quads[0])
        return _pack(7, [quads[0], kicker])
    if trips and (len(trips) > 1 or pairs):
        pair_rank = max(trips[1:] + pairs)
        return _pack(6, [trips[0], pair_rank])
    if flush_ranks is not None:
        return _pack(5, flush_ranks[:5])
    straight = _straight_high(distinct)
    if straight:
        return _pack(4, [straight])
    if trips:
        kickers = [r for r in distinct if r != trips[0]][:2]
        return _pack(3, [trips[0]] + kickers)
    if len(pairs) >= 2:
        kicker = max(r for r in distinct if r not in pairs[:2])
        return _pack(2, [pairs[0], pairs[1], kicker])
    if pairs:
        kickers = [r for r in distinct if r != pairs[0]][:3]
        return _pack(1, [pairs[0]] + kickers)
    return _pack(0, distinct[:5])


def score_category(score: int) -> int:
    return score >> 20


def _pack(category: int, kickers: Sequence[int]) -> int:
    value = category
    padded = list(kickers) + [0] * (5 - len(kickers))
    for kicker in padded:
        value = (value << 4) | kicker
    return value

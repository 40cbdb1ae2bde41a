from __future__ import annotations

import itertools
from typing import Sequence

from engine.cards import Card, full_deck
from engine.evaluator import hand_score

DEFAULT_FOLD_EQUITY = 0.35
DEFAULT_BET_FRACTION = 0.66


def river_equity(hero_hole: Sequence[Card], board: Sequence[Card]) -> float:
    """Exact equity of hero against every two-card holding left in the deck."""
    if len(hero_hole) != 2 or len(board) != 5:
        raise ValueError("River equity needs two hole cards and a five-card board")
    used = set(hero_hole) | set(board)
    if len(used) != 7:
        raise ValueError("Duplicate cards between hole cards and board")

    hero = hand_score(list(hero_hole) + list(board))
    unseen = [card for card in full_deck() if card not in used]
    board_cards = list(board)
    wins = ties = total = 0
    for villain in itertools.combinations(unseen, 2):
        total += 1
        score = hand_score(list(villain) + board_cards)
        if hero > score:
            wins += 1
        elif hero == score:
            ties += 1
    return (wins + 0.5 * ties) / total


def ev_fold() -> float:
    return 0.0


def ev_call(equity: float, pot: float, to_call: float) -> float:
    # pot already includes the bet being faced
    return equity * (pot + to_call) - (1.0 - equity) * to_call


def ev_check() -> float:
    return 0.0


def bet_size(pot: int, bb: int, fraction: float = DEFAULT_BET_FRACTION) -> int:
    return max(bb, int(round(fraction * pot)))


def ev_bet(equity: float, pot: float, size: float, fold_equity: float = DEFAULT_FOLD_EQUITY) -> float:
    called = equity * (pot + 2.0 * size) - (1.0 - equity) * size
    return fold_equity * pot + (1.0 - fold_equity) * called

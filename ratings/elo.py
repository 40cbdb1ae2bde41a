from __future__ import annotations

import math
from typing import Tuple


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def pot_scale(pot: int, bb: int) -> float:
    """Single-hand pot factor, around 1.0 for a pot of two big blinds."""
    if pot <= 0 or bb <= 0:
        return 1.0
    return clamp(pot / (2.0 * bb), 0.5, 3.0)


def mirror_weight(pot_sum: int, bb: int) -> float:
    if pot_sum <= 0 or bb <= 0:
        return 1.0
    return clamp(pot_sum / (2.0 * bb), 0.6, 3.0)


def margin_factor(chips: int, denom: float) -> float:
    if denom <= 0:
        return 1.0
    return clamp(1.0 + 0.5 * abs(chips) / denom, 1.0, 1.5)


def decay(games: int) -> float:
    return 1.0 / (1.0 + 0.01 * games)


class EloRatings:
    """Elo for the two contestants of one duel (A and B).

    Updates either per hand (score 1 / 0.5 / 0) or once per mirrored pair from
    the smoothed net chip margin. Every update moves the two ratings by exact
    opposite amounts.
    """

    def __init__(
        self,
        start: float = 1500.0,
        k: float = 24.0,
        weight_by_pot: bool = False,
        use_margin: bool = False,
    ) -> None:
        self.a = float(start)
        self.b = float(start)
        self.k = float(k)
        self.weight_by_pot = weight_by_pot
        self.use_margin = use_margin
        self.games = 0
        self.acc_a = 0.5
        self.acc_b = 0.5

    def expected(self) -> Tuple[float, float]:
        ea = 1.0 / (1.0 + math.pow(10.0, (self.b - self.a) / 400.0))
        return ea, 1.0 - ea

    def set_accuracy(self, acc_a: float, acc_b: float) -> None:
        self.acc_a = clamp(acc_a, 0.0, 1.0)
        self.acc_b = clamp(acc_b, 0.0, 1.0)

    def update_hand(self, score_a: float, pot: int, bb: int, chips_a: int = 0) -> Tuple[float, float]:
        ea, _ = self.expected()
        k = self.k * decay(self.games)
        if self.weight_by_pot:
            k *= pot_scale(pot, bb)
        if self.use_margin:
            k *= margin_factor(chips_a, _denominator(pot, bb))
        return self._apply(k * (score_a - ea))

    def update_from_mirror(self, chips_a: int, pot_sum: int, bb: int) -> Tuple[float, float]:
        ea, _ = self.expected()
        denom = _denominator(pot_sum, bb)

        # Squash the margin so a single huge pot cannot dominate the step.
        norm = math.tanh(chips_a / (denom / 2.0 * 1.4))
        bias = clamp(0.35 * (self.acc_a - self.acc_b), -0.2, 0.2)
        norm = clamp(norm + bias, -0.999, 0.999)
        score_a = 0.5 + 0.5 * norm

        avg_acc = (self.acc_a + self.acc_b) / 2.0
        vol_adj = clamp(0.85 + 0.3 * avg_acc, 0.75, 1.15)
        k = self.k * mirror_weight(pot_sum, bb) * vol_adj * decay(self.games)
        if self.use_margin:
            k *= margin_factor(chips_a, denom)
        return self._apply(k * (score_a - ea))

    def _apply(self, delta_a: float) -> Tuple[float, float]:
        delta_b = -delta_a
        self.a += delta_a
        self.b += delta_b
        self.games += 1
        return delta_a, delta_b


def outcome_score(winner_is_a: bool, tie: bool = False) -> float:
    if tie:
        return 0.5
    return 1.0 if winner_is_a else 0.0


def _denominator(pot: int, bb: int) -> float:
    if pot > 0:
        return float(pot)
    if bb > 0:
        return 2.0 * bb
    return 1.0

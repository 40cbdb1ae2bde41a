from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from engine.models import ActionType, Seat


@dataclass
class SeatStats:
    hands: int = 0
    net_chips: int = 0

    def bb_per_100(self, bb: int) -> float:
        if self.hands == 0 or bb <= 0:
            return 0.0
        return (self.net_chips / bb) / (self.hands / 100.0)


@dataclass
class ContestantStats:
    overall: SeatStats = field(default_factory=SeatStats)
    by_seat: Dict[Seat, SeatStats] = field(default_factory=lambda: {seat: SeatStats() for seat in Seat})
    actions: Dict[ActionType, int] = field(default_factory=lambda: {kind: 0 for kind in ActionType})
    fallbacks: int = 0

    def add_hand(self, seat: Seat, net: int) -> None:
        for bucket in (self.overall, self.by_seat[seat]):
            bucket.hands += 1
            bucket.net_chips += net

    def add_action(self, kind: ActionType) -> None:
        self.actions[kind] += 1

    def tallies(self) -> Dict[str, int]:
        return {kind.value: count for kind, count in self.actions.items()}

    def bb_per_100(self, bb: int) -> Dict[str, float]:
        rates = {"overall": self.overall.bb_per_100(bb)}
        rates.update({seat.value: stats.bb_per_100(bb) for seat, stats in self.by_seat.items()})
        return rates


def wilson_ci95(wins: int, ties: int, total: int) -> Tuple[float, float]:
    """Wilson interval for the pair win rate; a tie counts as half a win."""
    if total <= 0:
        return 0.0, 1.0
    z = 1.96
    n = float(total)
    p = (wins + 0.5 * ties) / n
    den = 1.0 + z * z / n
    center = p + z * z / (2.0 * n)
    half = z * math.sqrt(p * (1.0 - p) / n + z * z / (4.0 * n * n))
    return (center - half) / den, (center + half) / den


def bootstrap_ci95(
    values: Sequence[float],
    samples: int = 1000,
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    n = len(values)
    if n == 0 or samples <= 1:
        return 0.0, 0.0
    rng = rng or random.Random()
    means = sorted(sum(rng.choice(values) for _ in range(n)) / n for _ in range(samples))
    return means[int(0.025 * (samples - 1))], means[int(0.975 * (samples - 1))]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from engine.models import TableConfig


@dataclass
class EloConfig:
    start: float = 1500.0
    k: float = 24.0
    # Update after every hand instead of once per mirrored pair.
    per_hand: bool = False
    weight_by_pot: bool = False
    use_margin: bool = False


@dataclass
class GlickoConfig:
    rating: float = 1500.0
    rd: float = 350.0
    volatility: float = 0.06
    tau: float = 0.5


@dataclass
class StopConfig:
    max_seconds: float = 0.0
    stop_file: Optional[str] = None
    # False: finish the current pair before stopping.
    immediate: bool = False
    poll_interval: float = 0.25


@dataclass
class MatchConfig:
    table: TableConfig = field(default_factory=TableConfig)
    pairs: int = 5
    seed: Optional[int] = None
    probe_probability: float = 0.0
    elo: EloConfig = field(default_factory=EloConfig)
    glicko: GlickoConfig = field(default_factory=GlickoConfig)
    stop: StopConfig = field(default_factory=StopConfig)
    run_judge: bool = True

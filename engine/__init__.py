"""Heads-up hold'em primitives shared by the duel runner, judge and bots."""

from .cards import Card, RANKS, SUITS, build_deck, cards_to_labels, deal, parse_cards
from .evaluator import describe_rank, evaluate_best, hand_score
from .exceptions import (
    ArenaError,
    ChipConservationViolation,
    DecisionCanceled,
    DecisionError,
    DecisionFailed,
    DecisionTimeout,
    EngineInvariantError,
    EvalMismatch,
    IllegalAction,
    PersistenceUnavailable,
    RaiseOutOfBounds,
    VolatilitySolveError,
)
from .hand import HeadsUpHand
from .models import (
    Action,
    ActionRecord,
    ActionType,
    HandResult,
    Observation,
    PlayerState,
    Seat,
    Street,
    TableConfig,
)

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "build_deck",
    "cards_to_labels",
    "deal",
    "parse_cards",
    "describe_rank",
    "evaluate_best",
    "hand_score",
    "ArenaError",
    "ChipConservationViolation",
    "DecisionCanceled",
    "DecisionError",
    "DecisionFailed",
    "DecisionTimeout",
    "EngineInvariantError",
    "EvalMismatch",
    "IllegalAction",
    "PersistenceUnavailable",
    "RaiseOutOfBounds",
    "VolatilitySolveError",
    "HeadsUpHand",
    "Action",
    "ActionRecord",
    "ActionType",
    "HandResult",
    "Observation",
    "PlayerState",
    "Seat",
    "Street",
    "TableConfig",
]

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .cards import Card


class Seat(str, Enum):
    SB = "SB"
    BB = "BB"

    @property
    def other(self) -> "Seat":
        return Seat.BB if self is Seat.SB else Seat.SB


class Street(str, Enum):
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"


class ActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    RAISE = "raise"


@dataclass(frozen=True)
class Action:
    kind: ActionType
    # Absolute raise-to for RAISE; unused otherwise.
    amount: Optional[int] = None

    @classmethod
    def fold(cls) -> "Action":
        return cls(ActionType.FOLD)

    @classmethod
    def check(cls) -> "Action":
        return cls(ActionType.CHECK)

    @classmethod
    def call(cls) -> "Action":
        return cls(ActionType.CALL)

    @classmethod
    def raise_to(cls, amount: int) -> "Action":
        return cls(ActionType.RAISE, amount)


@dataclass(frozen=True)
class ActionRecord:
    seat: Seat
    street: Street
    kind: ActionType
    # Chips moved for CALL, raise-to for RAISE.
    amount: Optional[int] = None
    forced: bool = False


@dataclass
class TableConfig:
    starting_stack: int = 10_000
    sb: int = 50
    bb: int = 100
    move_time_ms: int = 15_000
    max_actions_per_street: int = 20
    variant: str = "HUNL"


@dataclass
class PlayerState:
    seat: Seat
    stack: int
    committed: int = 0
    total_in_pot: int = 0
    has_folded: bool = False
    all_in: bool = False
    hole_cards: List[Card] = field(default_factory=list)

    def reset_for_round(self) -> None:
        self.committed = 0


@dataclass(frozen=True)
class Observation:
    """What a decision source gets to see. Built by the engine for one seat."""

    hand_id: str
    seat: Seat
    street: Street
    hole_cards: Tuple[str, ...]
    board: Tuple[str, ...]
    stacks: Dict[str, int]
    blinds: Dict[str, int]
    pot: int
    to_call: int
    min_raise_to: int
    max_raise_to: int
    legal: Tuple[ActionType, ...]
    history_len: int

    def to_payload(self) -> Dict[str, object]:
        return {
            "hand_id": self.hand_id,
            "seat": self.seat.value,
            "street": self.street.value,
            "hole_cards": list(self.hole_cards),
            "board": list(self.board),
            "stacks": dict(self.stacks),
            "blinds": dict(self.blinds),
            "pot": self.pot,
            "to_call": self.to_call,
            "min_raise_to": self.min_raise_to,
            "max_raise_to": self.max_raise_to,
            "legal_actions": [action.value for action in self.legal],
            "history_len": self.history_len,
        }


@dataclass
class HandResult:
    hand_id: str
    # None on a split pot.
    winner: Optional[Seat]
    pot: int
    deltas: Dict[Seat, int]
    showdown: bool
    folded: Optional[Seat] = None
    ranks: Dict[Seat, str] = field(default_factory=dict)
    board: List[str] = field(default_factory=list)

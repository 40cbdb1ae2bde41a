"""Error taxonomy shared by the engine, the duel runner and the rating code."""

from __future__ import annotations

from typing import Optional


class ArenaError(Exception):
    code = "ARENA_ERROR"

    def __init__(self, msg: str, code: Optional[str] = None) -> None:
        super().__init__(msg)
        self.msg = msg
        if code is not None:
            self.code = code


# Per-decision problems. All of these are recovered with the fallback ladder.


class IllegalAction(ArenaError, ValueError):
    code = "ILLEGAL_ACTION"


class RaiseOutOfBounds(ArenaError, ValueError):
    code = "RAISE_OUT_OF_BOUNDS"


class DecisionError(ArenaError):
    code = "DECISION_ERROR"


class DecisionTimeout(DecisionError):
    code = "DECISION_TIMEOUT"


class DecisionCanceled(DecisionError):
    code = "DECISION_CANCELED"


class DecisionFailed(DecisionError):
    code = "DECISION_FAILED"


# Collaborator problems. Never fatal to a match.


class PersistenceUnavailable(ArenaError):
    code = "PERSISTENCE_UNAVAILABLE"


# Engine bugs. These stop the match and are reported.


class EngineInvariantError(ArenaError, RuntimeError):
    code = "ENGINE_INVARIANT"


class ChipConservationViolation(EngineInvariantError):
    code = "CHIP_CONSERVATION"


class EvalMismatch(EngineInvariantError):
    code = "EVAL_MISMATCH"


class VolatilitySolveError(ArenaError, ArithmeticError):
    code = "VOLATILITY_SOLVE"

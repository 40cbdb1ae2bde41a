from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional

from engine.exceptions import IllegalAction, RaiseOutOfBounds
from engine.models import Action, ActionType, Observation


@dataclass(frozen=True)
class Decision:
    """Raw answer from a decision source, before validation."""

    action: str
    amount: Optional[int] = None


class DecisionSource:
    """Anything that can pick an action for an observation.

    Subclasses implement ``decide``; ``notify`` receives hand lifecycle
    messages and may be ignored.
    """

    name = "source"

    async def decide(self, observation: Observation) -> Decision:
        raise NotImplementedError

    async def notify(self, msg_type: str, payload: Dict[str, object]) -> None:
        return None


def validate_decision(decision: Decision, observation: Observation) -> Action:
    name = decision.action.strip().lower() if isinstance(decision.action, str) else ""
    try:
        kind = ActionType(name)
    except ValueError:
        raise IllegalAction(f"Unknown action {decision.action!r}") from None
    if kind not in observation.legal:
        raise IllegalAction(f"{kind.value} is not in the legal set {[a.value for a in observation.legal]}")

    amount = decision.amount
    if kind is not ActionType.RAISE:
        if amount is not None:
            raise IllegalAction(f"Amount is only allowed with raise, got {amount!r} for {kind.value}")
        return Action(kind)

    if isinstance(amount, bool) or not isinstance(amount, int):
        raise RaiseOutOfBounds(f"Raise needs an integer amount, got {amount!r}")
    if not observation.min_raise_to <= amount <= observation.max_raise_to:
        raise RaiseOutOfBounds(
            f"Raise to {amount} outside [{observation.min_raise_to}, {observation.max_raise_to}]"
        )
    return Action.raise_to(amount)


def fallback_action(observation: Observation) -> Action:
    """Deterministic replacement for a missing or rejected decision."""
    legal = observation.legal
    if observation.to_call > 0:
        ladder = (ActionType.CALL, ActionType.FOLD, ActionType.RAISE, ActionType.CHECK)
    else:
        ladder = (ActionType.CHECK, ActionType.RAISE, ActionType.CALL, ActionType.FOLD)
    for kind in ladder:
        if kind in legal:
            if kind is ActionType.RAISE:
                return Action.raise_to(observation.min_raise_to)
            return Action(kind)
    raise IllegalAction("No legal action available")


class ProbePolicy:
    """Occasionally swaps check and minimum raise when there is nothing to call.

    Disabled at probability 0. The rng is seeded by the caller so runs repeat.
    """

    def __init__(self, probability: float = 0.0, rng: Optional[random.Random] = None) -> None:
        self.probability = min(max(probability, 0.0), 1.0)
        self.rng = rng or random.Random(0)

    def apply(self, action: Action, observation: Observation) -> Action:
        if self.probability <= 0 or observation.to_call != 0:
            return action
        legal = observation.legal
        if action.kind is ActionType.CHECK and ActionType.RAISE in legal:
            if self.rng.random() < self.probability:
                return Action.raise_to(observation.min_raise_to)
        elif action.kind is ActionType.RAISE and ActionType.CHECK in legal:
            if self.rng.random() < self.probability:
                return Action.check()
        return action

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from duel.config import MatchConfig
from duel.decisions import Decision, DecisionSource
from engine.cards import Card, full_deck, parse_cards
from engine.hand import HeadsUpHand
from engine.models import Action, ActionType, Observation, Seat, TableConfig


def create_table(
    *,
    starting_stack: int = 10_000,
    sb: int = 50,
    bb: int = 100,
    move_time_ms: int = 15_000,
    max_actions_per_street: int = 20,
) -> TableConfig:
    return TableConfig(
        starting_stack=starting_stack,
        sb=sb,
        bb=bb,
        move_time_ms=move_time_ms,
        max_actions_per_street=max_actions_per_street,
    )


def match_config(*, pairs: int = 1, seed: int = 1234, run_judge: bool = False, **table) -> MatchConfig:
    return MatchConfig(table=create_table(**table), pairs=pairs, seed=seed, run_judge=run_judge)


def stacked_deck(sb_hole: Sequence[str], bb_hole: Sequence[str], board: Sequence[str]) -> List[Card]:
    """Deck that deals the given cards in order, followed by the rest of the pack."""
    top = parse_cards(list(sb_hole) + list(bb_hole) + list(board))
    return top + [card for card in full_deck() if card not in top]


def start_hand(
    deck: Optional[List[Card]] = None,
    stacks: Optional[Dict[Seat, int]] = None,
    **table,
) -> HeadsUpHand:
    return HeadsUpHand("test-hand", create_table(**table), deck or full_deck(), stacks=stacks)


def check_down(hand: HeadsUpHand) -> None:
    """Advance the hand passively (check, else call) until it ends."""
    while not hand.is_complete():
        legal, *_ = hand.legal_actions(hand.to_act)
        if ActionType.CHECK in legal:
            hand.apply_action(Action.check())
        else:
            hand.apply_action(Action.call())


def perform_actions(hand: HeadsUpHand, actions: Iterable[Action]) -> None:
    for action in actions:
        hand.apply_action(action)


class ScriptedSource(DecisionSource):
    """Replays queued decisions, then checks or calls."""

    def __init__(self, name: str, decisions: Iterable[Decision] = ()) -> None:
        self.name = name
        self.decisions = list(decisions)
        self.observations: List[Observation] = []
        self.messages: List[tuple] = []

    async def decide(self, observation: Observation) -> Decision:
        self.observations.append(observation)
        if self.decisions:
            return self.decisions.pop(0)
        if ActionType.CHECK in observation.legal:
            return Decision("check")
        return Decision("call")

    async def notify(self, msg_type: str, payload: Dict[str, object]) -> None:
        self.messages.append((msg_type, payload))


class FoldingSource(ScriptedSource):
    async def decide(self, observation: Observation) -> Decision:
        self.observations.append(observation)
        if ActionType.FOLD in observation.legal:
            return Decision("fold")
        return Decision("check")


class SlowSource(ScriptedSource):
    def __init__(self, name: str, delay: float = 5.0) -> None:
        super().__init__(name)
        self.delay = delay

    async def decide(self, observation: Observation) -> Decision:
        self.observations.append(observation)
        await asyncio.sleep(self.delay)
        return Decision("check")


class BrokenSource(ScriptedSource):
    async def decide(self, observation: Observation) -> Decision:
        self.observations.append(observation)
        raise RuntimeError("strategy crashed")


class DummyWebSocket:
    def __init__(self, incoming: Iterable[str] = ()) -> None:
        self.incoming = list(incoming)
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> str:
        if not self.incoming:
            raise asyncio.TimeoutError
        return self.incoming.pop(0)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def __aiter__(self):
        return self._drain()

    async def _drain(self):
        while self.incoming:
            yield self.incoming.pop(0)

from __future__ import annotations

import random
from typing import Dict, Optional

from duel.decisions import Decision, DecisionSource
from engine.models import ActionType, Observation, Street

_RANK_POINTS = {rank: idx for idx, rank in enumerate("23456789TJQKA", start=2)}


def _rough_hand_strength(hole: tuple[str, ...]) -> int:
    """Very rough proxy for hand quality used to drive aggression choices."""
    if len(hole) < 2:
        return 0

    ranks = [card[0] for card in hole]
    suits = [card[1] for card in hole]
    values = [_RANK_POINTS.get(rank, 2) for rank in ranks]

    score = sum(values)
    if ranks[0] == ranks[1]:
        score += 14
    else:
        gap = abs(values[0] - values[1])
        if gap == 1:
            score += 4
        elif gap == 2:
            score += 2
    if suits[0] == suits[1]:
        score += 3
    if min(values) >= 11:
        score += 2
    return score


class HouseBot(DecisionSource):
    """Aggressive demo bot: random raises biased toward stronger holdings."""

    _STREET_BONUS = {
        Street.PREFLOP: 0.0,
        Street.FLOP: 0.05,
        Street.TURN: 0.1,
        Street.RIVER: 0.12,
    }

    def __init__(self, name: str = "house", seed: Optional[int] = None) -> None:
        self.name = name
        self.rng = random.Random(seed)

    async def decide(self, observation: Observation) -> Decision:
        legal = observation.legal
        facing_bet = observation.to_call > 0
        strength = _rough_hand_strength(observation.hole_cards)

        if ActionType.RAISE in legal and self._should_raise(strength, observation.street, facing_bet):
            return Decision("raise", self._raise_amount(observation, facing_bet))
        if ActionType.CALL in legal:
            # Give up on big bets with junk.
            if observation.to_call > observation.blinds["bb"] * 4 and strength < 20:
                return Decision("fold")
            return Decision("call")
        if ActionType.CHECK in legal:
            return Decision("check")
        return Decision("fold")

    def _should_raise(self, strength: int, street: Street, facing_bet: bool) -> bool:
        base = 0.2 if facing_bet else 0.35
        scaled_strength = min(strength / 45.0, 0.45)
        probability = min(0.85, base + self._STREET_BONUS.get(street, 0.0) + scaled_strength)
        if strength >= 36:
            return True
        return self.rng.random() < probability

    def _raise_amount(self, observation: Observation, facing_bet: bool) -> int:
        low, high = observation.min_raise_to, observation.max_raise_to
        if high <= low:
            return low
        roll = self.rng.random()
        if facing_bet:
            if roll < 0.2:
                return low
            if roll > 0.85:
                return high
        else:
            if roll < 0.35:
                return low
            if roll > 0.9:
                return high
        return low + int((high - low) * self.rng.random() * 0.25)


class CallingStation(DecisionSource):
    """Never raises: checks when free, calls otherwise."""

    def __init__(self, name: str = "station") -> None:
        self.name = name

    async def decide(self, observation: Observation) -> Decision:
        if ActionType.CHECK in observation.legal:
            return Decision("check")
        return Decision("call")


HOUSE_STYLES = {
    "house": HouseBot,
    "station": CallingStation,
}


def make_house_bot(name: str, style: str, seed: Optional[int] = None) -> DecisionSource:
    if style not in HOUSE_STYLES:
        raise ValueError(f"Unknown house bot style {style!r}; choose from {sorted(HOUSE_STYLES)}")
    if style == "house":
        return HouseBot(name, seed)
    return HOUSE_STYLES[style](name)


def parse_house_specs(specs: list[str], seed: Optional[int] = None) -> Dict[str, DecisionSource]:
    """Turn NAME=STYLE strings into named house bots."""
    bots: Dict[str, DecisionSource] = {}
    for idx, spec in enumerate(specs):
        name, _, style = spec.partition("=")
        name = name.strip()
        if not name:
            raise ValueError(f"Bad house bot spec {spec!r}")
        bots[name] = make_house_bot(name, style.strip() or "house", None if seed is None else seed + idx)
    return bots

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from .cards import Card, cards_to_labels, deal
from .evaluator import describe_rank, evaluate_best, hand_score, score_category
from .exceptions import ChipConservationViolation, EvalMismatch, IllegalAction, RaiseOutOfBounds
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

LOGGER = logging.getLogger("hand_engine")

# HeadsUpHand holds one hand of heads-up no-limit hold'em. There is no I/O here;
# the duel runner asks it for observations and feeds actions back in.

Event = Dict[str, object]
LegalInfo = Tuple[List[ActionType], int, int, int]

_NEXT_STREET = {
    Street.PREFLOP: (Street.FLOP, 3),
    Street.FLOP: (Street.TURN, 1),
    Street.TURN: (Street.RIVER, 1),
}


class HeadsUpHand:
    """Single heads-up hand driven one action at a time."""

    def __init__(
        self,
        hand_id: str,
        config: TableConfig,
        deck: List[Card],
        stacks: Optional[Dict[Seat, int]] = None,
    ) -> None:
        self.hand_id = hand_id
        self.config = config
        self.deck = list(deck)
        if stacks is None:
            stacks = {Seat.SB: config.starting_stack, Seat.BB: config.starting_stack}
        self.starting_stacks = {seat: stacks[seat] for seat in Seat}
        self.players = {seat: PlayerState(seat=seat, stack=self.starting_stacks[seat]) for seat in Seat}
        self.board: List[Card] = []
        self.street = Street.PREFLOP
        self.pot = 0
        self.current_bet = 0
        self.min_raise_increment = config.bb
        self.history: List[ActionRecord] = []
        self.street_actions = 0
        # Seats that still owe a decision before the betting round can close.
        self.pending: Set[Seat] = set()
        self.to_act: Optional[Seat] = None
        self.result: Optional[HandResult] = None
        self.pre_events: List[Event] = []
        self._handlers: Dict[ActionType, Callable[[PlayerState, Action, int], Event]] = {
            ActionType.FOLD: self._apply_fold,
            ActionType.CHECK: self._apply_check,
            ActionType.CALL: self._apply_call,
            ActionType.RAISE: self._apply_raise,
        }

        self._post_blinds()
        self._deal_hole_cards()
        self._open_round()
        if not self.pending:
            # A blind put someone all-in and nobody is left to decide.
            self.pre_events.extend(self._close_round())

    # Setup -----------------------------------------------------------

    def _post_blinds(self) -> None:
        sb_player = self.players[Seat.SB]
        bb_player = self.players[Seat.BB]
        self._commit_chips(sb_player, self.config.sb)
        self._commit_chips(bb_player, self.config.bb)
        self.current_bet = max(sb_player.committed, bb_player.committed)
        self.min_raise_increment = self.config.bb
        self.pre_events.append(
            {
                "ev": "POST_BLINDS",
                "sb": sb_player.committed,
                "bb": bb_player.committed,
            }
        )

    def _deal_hole_cards(self) -> None:
        for seat in (Seat.SB, Seat.BB):
            self.players[seat].hole_cards = deal(self.deck, 2)

    def _open_round(self) -> None:
        self.street_actions = 0
        self.pending = {seat for seat, player in self.players.items() if not player.has_folded}
        self._prune_pending()
        first = Seat.SB if self.street is Street.PREFLOP else Seat.BB
        if first in self.pending:
            self.to_act = first
        elif self.pending:
            self.to_act = next(iter(self.pending))
        else:
            self.to_act = None

    def _prune_pending(self) -> None:
        for seat in list(self.pending):
            player = self.players[seat]
            opponent = self.players[seat.other]
            if player.has_folded or player.all_in:
                self.pending.discard(seat)
            elif opponent.all_in and player.committed >= self.current_bet:
                # Already matched an all-in; nothing left to decide.
                self.pending.discard(seat)

    def _commit_chips(self, player: PlayerState, amount: int) -> int:
        amount = min(amount, player.stack)
        player.stack -= amount
        player.committed += amount
        player.total_in_pot += amount
        self.pot += amount
        if player.stack == 0:
            player.all_in = True
        return amount

    # Queries ---------------------------------------------------------

    def is_complete(self) -> bool:
        return self.result is not None

    def to_call(self, seat: Seat) -> int:
        return max(self.current_bet - self.players[seat].committed, 0)

    def legal_actions(self, seat: Seat) -> LegalInfo:
        """Return (legal actions, to_call, min_raise_to, max_raise_to) for seat.

        Raise bounds are zero when raising is not allowed.
        """
        player = self.players[seat]
        opponent = self.players[seat.other]
        to_call = self.to_call(seat)

        legal: List[ActionType] = []
        if to_call == 0:
            legal.append(ActionType.CHECK)
        else:
            legal.extend([ActionType.FOLD, ActionType.CALL])

        min_raise_to = 0
        max_raise_to = 0
        shove_to = player.committed + player.stack
        if not player.all_in and not opponent.all_in and shove_to > self.current_bet:
            legal.append(ActionType.RAISE)
            max_raise_to = shove_to
            # A shove smaller than a full raise is still allowed.
            min_raise_to = min(self.current_bet + self.min_raise_increment, shove_to)
        return legal, to_call, min_raise_to, max_raise_to

    def observation(self, seat: Seat) -> Observation:
        legal, to_call, min_raise_to, max_raise_to = self.legal_actions(seat)
        player = self.players[seat]
        return Observation(
            hand_id=self.hand_id,
            seat=seat,
            street=self.street,
            hole_cards=tuple(cards_to_labels(player.hole_cards)),
            board=tuple(cards_to_labels(self.board)),
            stacks={"hero": player.stack, "villain": self.players[seat.other].stack},
            blinds={"sb": self.config.sb, "bb": self.config.bb, "ante": 0},
            pot=self.pot,
            to_call=to_call,
            min_raise_to=min_raise_to,
            max_raise_to=max_raise_to,
            legal=tuple(legal),
            history_len=len(self.history),
        )

    def snapshot(self) -> Dict[str, object]:
        """State before the next action, as written to the action log."""
        return {
            "street": self.street.value,
            "pot": self.pot,
            "current_bet": self.current_bet,
            "min_raise_increment": self.min_raise_increment,
            "board": cards_to_labels(self.board),
            "stacks": {seat.value: player.stack for seat, player in self.players.items()},
            "committed": {seat.value: player.committed for seat, player in self.players.items()},
            "hole": {seat.value: cards_to_labels(player.hole_cards) for seat, player in self.players.items()},
            "to_act": self.to_act.value if self.to_act else None,
        }

    # Action handling -------------------------------------------------

    def apply_action(self, action: Action) -> List[Event]:
        if self.is_complete() or self.to_act is None:
            raise RuntimeError("Hand not in progress")
        seat = self.to_act
        legal, to_call, min_raise_to, max_raise_to = self.legal_actions(seat)
        if action.kind not in legal:
            raise IllegalAction(f"{action.kind.value} is not legal for {seat.value}")
        if action.kind is ActionType.RAISE:
            if action.amount is None or not (min_raise_to <= action.amount <= max_raise_to):
                raise RaiseOutOfBounds(
                    f"Raise to {action.amount} outside [{min_raise_to}, {max_raise_to}]"
                )

        player = self.players[seat]
        events = [self._handlers[action.kind](player, action, to_call)]
        LOGGER.debug("%s %s %s %s", self.hand_id, seat.value, action.kind.value, action.amount)
        if self.is_complete():
            return events

        self._prune_pending()
        self.street_actions += 1
        self._check_conservation()

        if self.pending and self.street_actions >= self.config.max_actions_per_street:
            events.extend(self._force_close())
        if not self.pending:
            events.extend(self._close_round())
        else:
            self.to_act = seat.other if seat.other in self.pending else next(iter(self.pending))
        return events

    def _apply_fold(self, player: PlayerState, action: Action, to_call: int) -> Event:
        player.has_folded = True
        self.pending.clear()
        self.history.append(ActionRecord(player.seat, self.street, ActionType.FOLD))
        event: Event = {"ev": "FOLD", "seat": player.seat.value}
        self.result = self._settle(showdown=False)
        return event

    def _apply_check(self, player: PlayerState, action: Action, to_call: int) -> Event:
        self.pending.discard(player.seat)
        self.history.append(ActionRecord(player.seat, self.street, ActionType.CHECK))
        return {"ev": "CHECK", "seat": player.seat.value}

    def _apply_call(self, player: PlayerState, action: Action, to_call: int) -> Event:
        moved = self._commit_chips(player, to_call)
        self.pending.discard(player.seat)
        self.history.append(ActionRecord(player.seat, self.street, ActionType.CALL, moved))
        return {"ev": "CALL", "seat": player.seat.value, "amount": moved}

    def _apply_raise(self, player: PlayerState, action: Action, to_call: int) -> Event:
        raise_to = int(action.amount or 0)
        previous_bet = self.current_bet
        self._commit_chips(player, raise_to - player.committed)
        self.current_bet = raise_to
        if raise_to - previous_bet >= self.min_raise_increment:
            self.min_raise_increment = raise_to - previous_bet
        # A raise re-opens action for the opponent only.
        opponent = self.players[player.seat.other]
        self.pending = set() if opponent.all_in or opponent.has_folded else {opponent.seat}
        self.history.append(ActionRecord(player.seat, self.street, ActionType.RAISE, raise_to))
        return {
            "ev": "RAISE",
            "seat": player.seat.value,
            "to": raise_to,
            "all_in": player.all_in,
        }

    def _force_close(self) -> List[Event]:
        LOGGER.warning(
            "%s: %s action cap (%d) reached; forcing the street closed",
            self.hand_id,
            self.street.value,
            self.config.max_actions_per_street,
        )
        events: List[Event] = [{"ev": "STREET_CAP", "street": self.street.value}]
        for seat in (Seat.SB, Seat.BB):
            if seat not in self.pending:
                continue
            player = self.players[seat]
            owed = self.to_call(seat)
            # Public state at the moment of the forced action, for the action log.
            before = {
                "pot": self.pot,
                "to_call": owed,
                "current_bet": self.current_bet,
                "stacks": {s.value: p.stack for s, p in self.players.items()},
            }
            if owed > 0:
                moved = self._commit_chips(player, owed)
                self.history.append(ActionRecord(seat, self.street, ActionType.CALL, moved, forced=True))
                events.append({"ev": "CALL", "seat": seat.value, "amount": moved, "forced": True, **before})
            else:
                self.history.append(ActionRecord(seat, self.street, ActionType.CHECK, forced=True))
                events.append({"ev": "CHECK", "seat": seat.value, "forced": True, **before})
        self.pending.clear()
        self._check_conservation()
        return events

    def _close_round(self) -> List[Event]:
        events: List[Event] = []
        while True:
            if self.street is Street.RIVER:
                self.street = Street.SHOWDOWN
                self.to_act = None
                self.result = self._settle(showdown=True)
                events.append({"ev": "SHOWDOWN", "ranks": {s.value: r for s, r in self.result.ranks.items()}})
                return events

            next_street, count = _NEXT_STREET[self.street]
            cards = deal(self.deck, count)
            self.board.extend(cards)
            self.street = next_street
            events.append({"ev": next_street.value.upper(), "cards": cards_to_labels(cards)})

            for player in self.players.values():
                player.reset_for_round()
            self.current_bet = 0
            self.min_raise_increment = self.config.bb
            self._open_round()
            if self.pending:
                return events
            # Nobody can act any more: keep running the board out.

    # Settlement ------------------------------------------------------

    def _settle(self, showdown: bool) -> HandResult:
        pot_before = self.pot
        sb_player = self.players[Seat.SB]
        bb_player = self.players[Seat.BB]

        # Return whatever part of the larger contribution was never matched.
        matched = min(sb_player.total_in_pot, bb_player.total_in_pot)
        for player in (sb_player, bb_player):
            excess = player.total_in_pot - matched
            if excess > 0:
                player.stack += excess
                self.pot -= excess

        ranks: Dict[Seat, str] = {}
        folded: Optional[Seat] = None
        if not showdown:
            folded = Seat.SB if sb_player.has_folded else Seat.BB
            winner: Optional[Seat] = folded.other
            self.players[folded.other].stack += self.pot
        else:
            winner, ranks = self._showdown_winner()
            if winner is None:
                half, odd = divmod(self.pot, 2)
                sb_player.stack += half
                bb_player.stack += half + odd
            else:
                self.players[winner].stack += self.pot
        self.pot = 0
        self.pending.clear()
        self.to_act = None
        self._check_conservation()

        deltas = {seat: self.players[seat].stack - self.starting_stacks[seat] for seat in Seat}
        return HandResult(
            hand_id=self.hand_id,
            winner=winner,
            pot=pot_before,
            deltas=deltas,
            showdown=showdown,
            folded=folded,
            ranks=ranks,
            board=cards_to_labels(self.board),
        )

    def _showdown_winner(self) -> Tuple[Optional[Seat], Dict[Seat, str]]:
        scores = {seat: evaluate_best(p.hole_cards + self.board) for seat, p in self.players.items()}
        raw = {seat: hand_score(p.hole_cards + self.board) for seat, p in self.players.items()}
        ranks = {seat: describe_rank(score) for seat, score in scores.items()}

        declared = _compare(scores[Seat.SB], scores[Seat.BB])
        recomputed = _compare(raw[Seat.SB], raw[Seat.BB])
        if declared != recomputed:
            LOGGER.error(
                "%s: showdown disagreement (best-five says %d, raw score says %d) board=%s",
                self.hand_id,
                declared,
                recomputed,
                cards_to_labels(self.board),
            )
            raise EvalMismatch(f"{self.hand_id}: evaluators disagree on the showdown winner")
        for seat, score in scores.items():
            if score[0] != score_category(raw[seat]):
                LOGGER.error(
                    "%s: category disagreement for %s (best-five %d, raw score %d)",
                    self.hand_id,
                    seat.value,
                    score[0],
                    score_category(raw[seat]),
                )
                raise EvalMismatch(f"{self.hand_id}: evaluators disagree on the {seat.value} hand category")

        if declared > 0:
            return Seat.SB, ranks
        if declared < 0:
            return Seat.BB, ranks
        return None, ranks

    def _check_conservation(self) -> None:
        total = sum(player.stack for player in self.players.values()) + self.pot
        expected = sum(self.starting_stacks.values())
        if total != expected:
            LOGGER.error("%s: chip conservation broken (%d != %d)", self.hand_id, total, expected)
            raise ChipConservationViolation(f"{self.hand_id}: {total} chips on the table, expected {expected}")


def _compare(left, right) -> int:
    return (left > right) - (left < right)

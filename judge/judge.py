from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

from engine.cards import parse_cards

from .equity import (
    DEFAULT_BET_FRACTION,
    DEFAULT_FOLD_EQUITY,
    bet_size,
    ev_bet,
    ev_call,
    ev_check,
    ev_fold,
    river_equity,
)

if TYPE_CHECKING:
    from duel.store import ActionLogRow, MatchStore

LOGGER = logging.getLogger("equity_judge")


@dataclass
class JudgeResult:
    action_log_id: int
    hand_id: str
    actor: str
    equity: float
    chosen_action: str
    chosen_amount: Optional[int]
    best_action: str
    best_amount: Optional[int]
    ev_chosen: float
    ev_best: float
    evs: Dict[str, float]
    ev_gap_bb: float
    is_top_action: bool


@dataclass
class JudgeSummary:
    match_id: str
    judged: int = 0
    skipped: int = 0
    good: Dict[str, int] = field(default_factory=dict)
    total: Dict[str, int] = field(default_factory=dict)

    def accuracy(self, actor: str) -> Optional[float]:
        total = self.total.get(actor, 0)
        if total == 0:
            return None
        return self.good.get(actor, 0) / total


class EquityJudge:
    """Grades logged river decisions against exact showdown equity.

    Facing a bet the judge compares call with fold. With nothing to call it
    compares check with a standard-sized bet under a fixed fold-equity
    assumption. Other spots (earlier streets, raising over a bet, actions forced
    by the street cap) are skipped.
    """

    def __init__(
        self,
        bb: int,
        fold_equity: float = DEFAULT_FOLD_EQUITY,
        bet_fraction: float = DEFAULT_BET_FRACTION,
        epsilon_bb: float = 0.15,
    ) -> None:
        self.bb = bb if bb > 0 else 100
        self.fold_equity = fold_equity
        self.bet_fraction = bet_fraction
        self.epsilon = epsilon_bb * self.bb

    def judge_row(self, row: ActionLogRow) -> Optional[JudgeResult]:
        if row.street != "river" or row.forced:
            return None
        hole = row.sb_hole if row.seat == "SB" else row.bb_hole
        try:
            hero = parse_cards(hole)
            board = parse_cards(row.board)
            equity = river_equity(hero, board)
        except ValueError as exc:
            LOGGER.debug("Skipping log row %s: %s", row.id, exc)
            return None

        chosen = row.action.lower()
        pot = float(row.pot)
        if row.to_call > 0:
            if chosen not in ("call", "fold"):
                return None
            evs = {"fold": ev_fold(), "call": ev_call(equity, pot, row.to_call)}
            best_amount = None
        else:
            if chosen not in ("check", "raise"):
                return None
            size = bet_size(row.pot, self.bb, self.bet_fraction)
            evs = {"check": ev_check(), "raise": ev_bet(equity, pot, size, self.fold_equity)}
            best_amount = row.current_bet + size

        best = max(evs, key=lambda name: evs[name])
        gap = evs[best] - evs[chosen]
        return JudgeResult(
            action_log_id=row.id,
            hand_id=row.hand_id,
            actor=row.actor,
            equity=equity,
            chosen_action=chosen,
            chosen_amount=row.amount,
            best_action=best,
            best_amount=best_amount if best == "raise" else None,
            ev_chosen=evs[chosen],
            ev_best=evs[best],
            evs=evs,
            ev_gap_bb=gap / self.bb,
            is_top_action=gap <= self.epsilon,
        )

    def evaluate_match(self, store: MatchStore, match_id: str) -> JudgeSummary:
        summary = JudgeSummary(match_id=match_id)
        rows = store.action_logs(match_id)
        for row in rows:
            result = self.judge_row(row)
            if result is None:
                summary.skipped += 1
                continue
            store.upsert_verdict(result)
            summary.judged += 1
            summary.total[result.actor] = summary.total.get(result.actor, 0) + 1
            if result.is_top_action:
                summary.good[result.actor] = summary.good.get(result.actor, 0) + 1
        LOGGER.info(
            "Judged %d of %d logged decisions for match %s",
            summary.judged,
            summary.judged + summary.skipped,
            match_id,
        )
        return summary


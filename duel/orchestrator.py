from __future__ import annotations

import asyncio
import itertools
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from engine.cards import build_deck
from engine.exceptions import (
    DecisionCanceled,
    DecisionError,
    DecisionFailed,
    DecisionTimeout,
    EngineInvariantError,
    IllegalAction,
    RaiseOutOfBounds,
    VolatilitySolveError,
)
from engine.hand import HeadsUpHand
from engine.models import Action, ActionType, HandResult, Observation, Seat
from judge.judge import EquityJudge, JudgeSummary
from ratings.elo import EloRatings, outcome_score
from ratings.glicko2 import Glicko2Rating, score_from_margin

from .config import MatchConfig
from .decisions import Decision, DecisionSource, ProbePolicy, fallback_action, validate_decision
from .seeds import SeedStream, resolve_base_seed
from .stats import ContestantStats, bootstrap_ci95, wilson_ci95
from .stop import StopToken
from .store import ActionLogRow, CareerRecord, MatchStore, ParticipantRow, RatingPoint, SafeRecorder

LOGGER = logging.getLogger("duel_runner")

# DuelRunner plays mirrored pairs between two decision sources: the same deck
# seed is dealt twice with the seats swapped, so card luck cancels out.


class MatchStatus(str, Enum):
    COMPLETED = "completed"
    STOPPED = "stopped"
    ABORTED = "aborted"
    ENGINE_DEFECT = "engine_defect"


@dataclass
class Contestant:
    label: str
    name: str
    source: DecisionSource
    bank: int
    wins: int = 0
    stats: ContestantStats = field(default_factory=ContestantStats)

    def __post_init__(self) -> None:
        self.start_bank = self.bank


@dataclass
class HandOutcome:
    hand_id: str
    # label of the contestant in each seat
    seats: Dict[Seat, str]
    result: Optional[HandResult] = None
    aborted: bool = False

    def delta(self, label: str) -> int:
        if self.result is None:
            return 0
        return sum(delta for seat, delta in self.result.deltas.items() if self.seats[seat] == label)

    @property
    def winner_label(self) -> Optional[str]:
        if self.result is None or self.result.winner is None:
            return None
        return self.seats[self.result.winner]

    @property
    def pot(self) -> int:
        return self.result.pot if self.result else 0

    @property
    def board(self) -> List[str]:
        return list(self.result.board) if self.result else []


@dataclass
class PairOutcome:
    index: int
    seed: int
    first: HandOutcome
    second: Optional[HandOutcome] = None
    chips_a: int = 0
    pot_sum: int = 0
    mirror_ok: Optional[bool] = None

    @property
    def aborted(self) -> bool:
        return self.first.aborted or (self.second is not None and self.second.aborted)

    @property
    def aborted_hand_id(self) -> Optional[str]:
        for hand in (self.first, self.second):
            if hand is not None and hand.aborted:
                return hand.hand_id
        return None


@dataclass
class MatchResult:
    match_id: str
    status: MatchStatus
    base_seed: int
    names: Dict[str, str]
    banks: Dict[str, int]
    wins: Dict[str, int]
    elo: Dict[str, float]
    glicko: Dict[str, Glicko2Rating]
    pairs: List[PairOutcome] = field(default_factory=list)
    pair_wins_a: int = 0
    pair_ties: int = 0
    win_ci: Tuple[float, float] = (0.0, 1.0)
    margin_ci: Tuple[float, float] = (0.0, 0.0)
    aborted_hand_id: Optional[str] = None
    defect: Optional[str] = None
    judge: Optional[JudgeSummary] = None

    @property
    def pairs_played(self) -> int:
        return sum(1 for pair in self.pairs if not pair.aborted)


class DuelRunner:
    """Runs one match of mirrored pairs between contestants A and B."""

    def __init__(
        self,
        source_a: DecisionSource,
        source_b: DecisionSource,
        config: Optional[MatchConfig] = None,
        store: Optional[MatchStore] = None,
        token: Optional[StopToken] = None,
        name_a: Optional[str] = None,
        name_b: Optional[str] = None,
    ) -> None:
        self.config = config or MatchConfig()
        self.recorder = SafeRecorder(store)
        self.token = token or StopToken(self.config.stop)
        self.base_seed = resolve_base_seed(self.config.seed)
        self.seeds = SeedStream(self.base_seed)
        self.probe = ProbePolicy(self.config.probe_probability, random.Random(self.base_seed))

        stack = self.config.table.starting_stack
        self.a = Contestant("A", name_a or getattr(source_a, "name", "A"), source_a, stack)
        self.b = Contestant("B", name_b or getattr(source_b, "name", "B"), source_b, stack)
        self.contestants = {"A": self.a, "B": self.b}

        elo_cfg = self.config.elo
        self.elo = EloRatings(elo_cfg.start, elo_cfg.k, elo_cfg.weight_by_pot, elo_cfg.use_margin)
        glicko_cfg = self.config.glicko
        self.glicko = {
            label: Glicko2Rating(glicko_cfg.rating, glicko_cfg.rd, glicko_cfg.volatility) for label in ("A", "B")
        }
        self.match_id = ""

    # Match -----------------------------------------------------------

    async def run_match(self) -> MatchResult:
        config = self.config
        table = config.table
        careers = self._load_careers()
        self.match_id = self.recorder.create_match(
            {
                "names": {"A": self.a.name, "B": self.b.name},
                "sb": table.sb,
                "bb": table.bb,
                "starting_stack": table.starting_stack,
                "pairs": config.pairs,
                "base_seed": self.base_seed,
                "elo_start": config.elo.start,
                "elo_k": config.elo.k,
                "elo_per_hand": config.elo.per_hand,
                "elo_weight_by_pot": config.elo.weight_by_pot,
            }
        )
        LOGGER.info(
            "Match %s: %s (A) vs %s (B), %d pairs, base seed %d",
            self.match_id,
            self.a.name,
            self.b.name,
            config.pairs,
            self.base_seed,
        )
        self._record_ratings("start", None)

        result = MatchResult(
            match_id=self.match_id,
            status=MatchStatus.COMPLETED,
            base_seed=self.base_seed,
            names={"A": self.a.name, "B": self.b.name},
            banks={},
            wins={},
            elo={},
            glicko=self.glicko,
        )
        margins: List[float] = []

        for index in range(1, config.pairs + 1):
            if self.token.poll():
                result.status = MatchStatus.STOPPED
                LOGGER.info("Stopping before pair %d", index)
                break
            seed = self.seeds.next()
            try:
                pair = await self.play_pair(index, seed)
            except EngineInvariantError as exc:
                LOGGER.error("Engine defect in pair %d (seed %d): %s", index, seed, exc)
                result.status = MatchStatus.ENGINE_DEFECT
                result.defect = str(exc)
                break
            result.pairs.append(pair)
            if pair.aborted:
                result.status = MatchStatus.ABORTED
                result.aborted_hand_id = pair.aborted_hand_id
                LOGGER.warning("Match %s aborted during hand %s; no payout", self.match_id, pair.aborted_hand_id)
                break

            try:
                self._update_pair_ratings(pair)
            except VolatilitySolveError as exc:
                LOGGER.error("Rating update failed after pair %d (seed %d): %s", index, seed, exc)
                result.status = MatchStatus.ENGINE_DEFECT
                result.defect = str(exc)
                break
            self._record_ratings("after_pair", index)
            if pair.chips_a > 0:
                result.pair_wins_a += 1
            elif pair.chips_a == 0:
                result.pair_ties += 1
            margins.append(pair.chips_a / table.starting_stack if table.starting_stack > 0 else 0.0)

            LOGGER.info(
                "Pair %d/%d: chips A %+d, banks A=%d B=%d",
                index,
                config.pairs,
                pair.chips_a,
                self.a.bank,
                self.b.bank,
            )
            if self.a.bank <= 0 or self.b.bank <= 0:
                LOGGER.info("A bank reached zero; ending match")
                break

        completed_pairs = result.pairs_played
        result.win_ci = wilson_ci95(result.pair_wins_a, result.pair_ties, completed_pairs)
        result.margin_ci = bootstrap_ci95(margins, rng=random.Random(self.base_seed))
        await self._finish(result, careers)
        return result

    async def _finish(self, result: MatchResult, careers: Dict[str, CareerRecord]) -> None:
        self._record_ratings("end", None)
        for contestant in (self.a, self.b):
            stats = contestant.stats
            self.recorder.record_participant(
                ParticipantRow(
                    match_id=self.match_id,
                    label=contestant.label,
                    name=contestant.name,
                    start_bank=contestant.start_bank,
                    end_bank=contestant.bank,
                    wins=contestant.wins,
                    hands_sb=stats.by_seat[Seat.SB].hands,
                    hands_bb=stats.by_seat[Seat.BB].hands,
                    net_chips=contestant.bank - contestant.start_bank,
                    actions=stats.tallies(),
                    bb_per_100=stats.bb_per_100(self.config.table.bb),
                )
            )

        if self.config.run_judge and not self.recorder.degraded:
            judge = EquityJudge(self.config.table.bb)
            result.judge = judge.evaluate_match(self.recorder, self.match_id)

        result.banks = {label: c.bank for label, c in self.contestants.items()}
        result.wins = {label: c.wins for label, c in self.contestants.items()}
        result.elo = {"A": self.elo.a, "B": self.elo.b}
        self.recorder.complete_match(
            self.match_id,
            result.status.value,
            {
                "banks": result.banks,
                "wins": result.wins,
                "pairs_played": result.pairs_played,
                "aborted_hand_id": result.aborted_hand_id,
                "defect": result.defect,
            },
        )
        self._save_careers(careers, result.judge)

        payload = {
            "match_id": self.match_id,
            "status": result.status.value,
            "banks": result.banks,
            "wins": result.wins,
        }
        for contestant in (self.a, self.b):
            await contestant.source.notify("match_end", payload)
        LOGGER.info(
            "Match %s %s: A=%d (%d wins) B=%d (%d wins), Elo A=%.1f B=%.1f",
            self.match_id,
            result.status.value,
            self.a.bank,
            self.a.wins,
            self.b.bank,
            self.b.wins,
            self.elo.a,
            self.elo.b,
        )

    # Pairs and hands -------------------------------------------------

    async def play_pair(self, index: int, seed: int) -> PairOutcome:
        first = await self.play_hand(index, f"duel-{index}A", seed, sb=self.a, bb=self.b)
        pair = PairOutcome(index=index, seed=seed, first=first)
        if first.aborted:
            return pair
        self._after_hand(first)

        second = await self.play_hand(index, f"duel-{index}B", seed, sb=self.b, bb=self.a)
        pair.second = second
        if second.aborted:
            return pair
        self._after_hand(second)

        pair.chips_a = first.delta("A") + second.delta("A")
        pair.pot_sum = first.pot + second.pot
        if len(first.board) == 5 and len(second.board) == 5:
            pair.mirror_ok = first.board == second.board
            if not pair.mirror_ok:
                LOGGER.error("Mirror check failed for pair %d: %s vs %s", index, first.board, second.board)
        return pair

    async def play_hand(self, pair_index: int, hand_id: str, seed: int, sb: Contestant, bb: Contestant) -> HandOutcome:
        hand = HeadsUpHand(hand_id, self.config.table, build_deck(seed))
        by_seat = {Seat.SB: sb, Seat.BB: bb}
        outcome = HandOutcome(hand_id=hand_id, seats={Seat.SB: sb.label, Seat.BB: bb.label})

        for seat, contestant in by_seat.items():
            await contestant.source.notify(
                "start_hand",
                {"hand_id": hand_id, "seat": seat.value, "pair": pair_index, "events": hand.pre_events},
            )

        while not hand.is_complete():
            if self.token.should_abort():
                outcome.aborted = True
                return outcome
            seat = hand.to_act
            assert seat is not None
            contestant = by_seat[seat]
            observation = hand.observation(seat)
            snapshot = hand.snapshot()

            fallback: Optional[str] = None
            try:
                action = await self._request_decision(contestant, observation)
            except (IllegalAction, RaiseOutOfBounds, DecisionError) as exc:
                if isinstance(exc, DecisionCanceled) and self.token.should_abort():
                    outcome.aborted = True
                    return outcome
                fallback = exc.code
                action = fallback_action(observation)
                contestant.stats.fallbacks += 1
                LOGGER.warning(
                    "%s: %s fell back to %s (%s)", hand_id, contestant.name, action.kind.value, exc
                )
            applied = self.probe.apply(action, observation)

            events = hand.apply_action(applied)
            contestant.stats.add_action(applied.kind)
            self._log_action(
                pair_index, hand_id, contestant, seat, observation, snapshot, applied, fallback, applied != action
            )
            for event in events:
                if event.get("forced"):
                    self._log_forced(pair_index, hand_id, by_seat, observation, snapshot, event)
            for other in by_seat.values():
                await other.source.notify("event", {"hand_id": hand_id, "events": events})

        outcome.result = hand.result
        for seat, contestant in by_seat.items():
            await contestant.source.notify(
                "end_hand",
                {
                    "hand_id": hand_id,
                    "winner": outcome.winner_label,
                    "delta": outcome.delta(contestant.label),
                    "board": outcome.board,
                },
            )
        return outcome

    async def _request_decision(self, contestant: Contestant, observation: Observation) -> Action:
        """Ask one source for a decision, bounded by the move clock and the stop token."""
        move_time = self.config.table.move_time_ms / 1000.0
        decide = asyncio.ensure_future(contestant.source.decide(observation))
        watcher = asyncio.ensure_future(self.token.wait_immediate())
        try:
            done, _ = await asyncio.wait(
                {decide, watcher},
                timeout=move_time if move_time > 0 else None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (decide, watcher):
                if not task.done():
                    task.cancel()
            await asyncio.gather(decide, watcher, return_exceptions=True)

        if decide in done:
            exc = decide.exception()
            if isinstance(exc, DecisionError):
                raise exc
            if exc is not None:
                raise DecisionFailed(f"{contestant.name} failed to decide: {exc!r}") from exc
            decision = decide.result()
            if not isinstance(decision, Decision):
                raise IllegalAction(f"{contestant.name} returned {decision!r}")
            return validate_decision(decision, observation)
        if watcher in done:
            raise DecisionCanceled(f"Decision for {observation.hand_id} cancelled by immediate stop")
        raise DecisionTimeout(f"{contestant.name} did not answer within {move_time:.2f}s")

    def _after_hand(self, outcome: HandOutcome) -> None:
        for seat, label in outcome.seats.items():
            contestant = self.contestants[label]
            delta = outcome.delta(label)
            contestant.bank += delta
            contestant.stats.add_hand(seat, delta)
        winner = outcome.winner_label
        if winner is not None:
            self.contestants[winner].wins += 1

        if self.config.elo.per_hand:
            tie = outcome.result is not None and outcome.result.winner is None
            self.elo.update_hand(
                outcome_score(winner == "A", tie),
                outcome.pot,
                self.config.table.bb,
                chips_a=outcome.delta("A"),
            )

    def _update_pair_ratings(self, pair: PairOutcome) -> None:
        if not self.config.elo.per_hand:
            self.elo.update_from_mirror(pair.chips_a, pair.pot_sum, self.config.table.bb)

        score = score_from_margin(pair.chips_a, float(self.config.table.starting_stack))
        old_a = self.glicko["A"].copy()
        old_b = self.glicko["B"].copy()
        tau = self.config.glicko.tau
        self.glicko["A"].update_pair(old_b, score, tau)
        self.glicko["B"].update_pair(old_a, 1.0 - score, tau)

    # Persistence -----------------------------------------------------

    def _log_action(
        self,
        pair_index: int,
        hand_id: str,
        contestant: Contestant,
        seat: Seat,
        observation: Observation,
        snapshot: Dict[str, object],
        action: Action,
        fallback: Optional[str],
        probed: bool,
    ) -> None:
        hole = snapshot["hole"]
        self.recorder.append_action(
            ActionLogRow(
                match_id=self.match_id,
                pair_index=pair_index,
                hand_id=hand_id,
                street=observation.street.value,
                actor=contestant.label,
                seat=seat.value,
                action=action.kind.value,
                amount=action.amount,
                pot=observation.pot,
                to_call=observation.to_call,
                current_bet=int(snapshot["current_bet"]),
                board=list(observation.board),
                sb_hole=list(hole[Seat.SB.value]),
                bb_hole=list(hole[Seat.BB.value]),
                stacks=dict(snapshot["stacks"]),
                fallback=fallback,
                probed=probed,
            )
        )

    def _log_forced(
        self,
        pair_index: int,
        hand_id: str,
        by_seat: Dict[Seat, Contestant],
        observation: Observation,
        snapshot: Dict[str, object],
        event: Dict[str, object],
    ) -> None:
        """Log a call or check the engine applied to close a capped street."""
        seat = Seat(str(event["seat"]))
        kind = ActionType(str(event["ev"]).lower())
        contestant = by_seat[seat]
        contestant.stats.add_action(kind)
        hole = snapshot["hole"]
        self.recorder.append_action(
            ActionLogRow(
                match_id=self.match_id,
                pair_index=pair_index,
                hand_id=hand_id,
                street=observation.street.value,
                actor=contestant.label,
                seat=seat.value,
                action=kind.value,
                amount=event.get("amount"),
                pot=int(event["pot"]),
                to_call=int(event["to_call"]),
                current_bet=int(event["current_bet"]),
                board=list(observation.board),
                sb_hole=list(hole[Seat.SB.value]),
                bb_hole=list(hole[Seat.BB.value]),
                stacks=dict(event["stacks"]),
                fallback="STREET_CAP",
                forced=True,
            )
        )

    def _record_ratings(self, stage: str, pair_index: Optional[int]) -> None:
        self.recorder.record_rating_point(
            RatingPoint(
                match_id=self.match_id,
                stage=stage,
                pair_index=pair_index,
                elo_a=self.elo.a,
                elo_b=self.elo.b,
                glicko_a=_glicko_dict(self.glicko["A"]),
                glicko_b=_glicko_dict(self.glicko["B"]),
            )
        )

    def _load_careers(self) -> Dict[str, CareerRecord]:
        careers: Dict[str, CareerRecord] = {}
        accuracy = {}
        for contestant in (self.a, self.b):
            record = self.recorder.career(contestant.name)
            if record is None:
                continue
            careers[contestant.label] = record
            if contestant.label == "A":
                self.elo.a = record.elo
            else:
                self.elo.b = record.elo
            self.glicko[contestant.label] = Glicko2Rating(
                record.glicko_rating, record.glicko_rd, record.glicko_volatility
            )
            if record.accuracy is not None:
                accuracy[contestant.label] = record.accuracy
        if accuracy:
            self.elo.set_accuracy(accuracy.get("A", 0.5), accuracy.get("B", 0.5))
            LOGGER.info("Seeded Elo accuracy bias from careers: %s", accuracy)
        return careers

    def _save_careers(self, careers: Dict[str, CareerRecord], summary: Optional[JudgeSummary]) -> None:
        elo = {"A": self.elo.a, "B": self.elo.b}
        for label, contestant in self.contestants.items():
            record = careers.get(label) or CareerRecord(name=contestant.name)
            rating = self.glicko[label]
            record.elo = elo[label]
            record.glicko_rating = rating.rating
            record.glicko_rd = rating.rd
            record.glicko_volatility = rating.volatility
            record.matches += 1
            record.hands += contestant.stats.overall.hands
            if summary is not None:
                record.judge_good += summary.good.get(label, 0)
                record.judge_total += summary.total.get(label, 0)
            self.recorder.save_career(record)


def _glicko_dict(rating: Glicko2Rating) -> Dict[str, float]:
    return {"rating": rating.rating, "rd": rating.rd, "volatility": rating.volatility}


async def run_round_robin(
    sources: Dict[str, DecisionSource],
    config: Optional[MatchConfig] = None,
    store: Optional[MatchStore] = None,
    token: Optional[StopToken] = None,
) -> List[MatchResult]:
    """Play one duel for every unordered pair of named sources."""
    config = config or MatchConfig()
    token = token or StopToken(config.stop)
    results: List[MatchResult] = []
    for name_a, name_b in itertools.combinations(sources, 2):
        if token.poll():
            LOGGER.info("Stop requested; skipping remaining duels")
            break
        runner = DuelRunner(sources[name_a], sources[name_b], config, store, token, name_a, name_b)
        result = await runner.run_match()
        results.append(result)
        if result.status in (MatchStatus.ABORTED, MatchStatus.ENGINE_DEFECT):
            break
    return results

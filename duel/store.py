from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, TypeVar

from engine.exceptions import PersistenceUnavailable
from judge.judge import JudgeResult

LOGGER = logging.getLogger("duel_store")

T = TypeVar("T")


@dataclass
class ActionLogRow:
    match_id: str
    pair_index: int
    hand_id: str
    street: str
    actor: str
    seat: str
    action: str
    amount: Optional[int]
    pot: int
    to_call: int
    current_bet: int
    board: List[str]
    sb_hole: List[str]
    bb_hole: List[str]
    stacks: Dict[str, int]
    fallback: Optional[str] = None
    probed: bool = False
    # Applied by the engine when the street action cap closed the round.
    forced: bool = False
    id: int = 0


@dataclass
class RatingPoint:
    match_id: str
    stage: str  # start / after_pair / end
    pair_index: Optional[int]
    elo_a: float
    elo_b: float
    glicko_a: Dict[str, float]
    glicko_b: Dict[str, float]


@dataclass
class ParticipantRow:
    match_id: str
    label: str
    name: str
    start_bank: int
    end_bank: int
    wins: int
    hands_sb: int
    hands_bb: int
    net_chips: int
    actions: Dict[str, int] = field(default_factory=dict)
    # win rate in big blinds per 100 hands: overall, SB and BB
    bb_per_100: Dict[str, float] = field(default_factory=dict)


@dataclass
class CareerRecord:
    name: str
    elo: float = 1500.0
    glicko_rating: float = 1500.0
    glicko_rd: float = 350.0
    glicko_volatility: float = 0.06
    matches: int = 0
    hands: int = 0
    judge_good: int = 0
    judge_total: int = 0

    @property
    def accuracy(self) -> Optional[float]:
        if self.judge_total == 0:
            return None
        return self.judge_good / self.judge_total


class MatchStore:
    """Persistence contract used by the duel runner and the judge."""

    def create_match(self, info: Dict[str, object]) -> str:
        raise NotImplementedError

    def append_action(self, row: ActionLogRow) -> int:
        raise NotImplementedError

    def record_rating_point(self, point: RatingPoint) -> None:
        raise NotImplementedError

    def record_participant(self, row: ParticipantRow) -> None:
        raise NotImplementedError

    def complete_match(self, match_id: str, status: str, summary: Dict[str, object]) -> None:
        raise NotImplementedError

    def action_logs(self, match_id: str) -> List[ActionLogRow]:
        raise NotImplementedError

    def upsert_verdict(self, result: JudgeResult) -> None:
        raise NotImplementedError

    def verdicts(self) -> Dict[int, JudgeResult]:
        raise NotImplementedError

    def career(self, name: str) -> Optional[CareerRecord]:
        raise NotImplementedError

    def save_career(self, record: CareerRecord) -> None:
        raise NotImplementedError


class MemoryStore(MatchStore):
    def __init__(self) -> None:
        self.matches: Dict[str, Dict[str, object]] = {}
        self.actions: List[ActionLogRow] = []
        self.rating_points: List[RatingPoint] = []
        self.participants: List[ParticipantRow] = []
        self._verdicts: Dict[int, JudgeResult] = {}
        self.careers: Dict[str, CareerRecord] = {}
        self._match_counter = 0

    def create_match(self, info: Dict[str, object]) -> str:
        self._match_counter += 1
        match_id = f"M-{time.strftime('%Y%m%d-%H%M%S')}-{self._match_counter:03d}"
        self.matches[match_id] = {"status": "running", **info}
        return match_id

    def append_action(self, row: ActionLogRow) -> int:
        row.id = len(self.actions) + 1
        self.actions.append(row)
        return row.id

    def record_rating_point(self, point: RatingPoint) -> None:
        self.rating_points.append(point)

    def record_participant(self, row: ParticipantRow) -> None:
        self.participants.append(row)

    def complete_match(self, match_id: str, status: str, summary: Dict[str, object]) -> None:
        record = self.matches.setdefault(match_id, {})
        record.update(summary)
        record["status"] = status

    def action_logs(self, match_id: str) -> List[ActionLogRow]:
        return [row for row in self.actions if row.match_id == match_id]

    def upsert_verdict(self, result: JudgeResult) -> None:
        self._verdicts[result.action_log_id] = result

    def verdicts(self) -> Dict[int, JudgeResult]:
        return dict(self._verdicts)

    def career(self, name: str) -> Optional[CareerRecord]:
        return self.careers.get(name)

    def save_career(self, record: CareerRecord) -> None:
        self.careers[record.name] = record


class JsonlStore(MemoryStore):
    """Append-only JSON lines under one directory.

    Upserts are appended too; the last line for a key wins when careers are
    loaded back.
    """

    def __init__(self, directory: str) -> None:
        super().__init__()
        self.directory = directory
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise PersistenceUnavailable(f"Cannot create log directory {directory}: {exc}") from exc
        self._load_careers()

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, name)

    def _append(self, name: str, record: Dict[str, object]) -> None:
        try:
            with open(self._path(name), "a", encoding="utf-8") as handle:
                handle.write(json.dumps(record) + "\n")
        except OSError as exc:
            raise PersistenceUnavailable(f"Write to {name} failed: {exc}") from exc

    def _load_careers(self) -> None:
        path = self._path("careers.jsonl")
        if not os.path.exists(path):
            return
        try:
            with open(path, encoding="utf-8") as handle:
                for line in handle:
                    line = line.strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    self.careers[data["name"]] = CareerRecord(**data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceUnavailable(f"Cannot read careers: {exc}") from exc

    def create_match(self, info: Dict[str, object]) -> str:
        match_id = super().create_match(info)
        self._append("matches.jsonl", {"match_id": match_id, "event": "created", **info})
        return match_id

    def append_action(self, row: ActionLogRow) -> int:
        row.id = len(self.actions) + 1
        self._append("actions.jsonl", asdict(row))
        self.actions.append(row)
        return row.id

    def record_rating_point(self, point: RatingPoint) -> None:
        self._append("ratings.jsonl", asdict(point))
        super().record_rating_point(point)

    def record_participant(self, row: ParticipantRow) -> None:
        self._append("participants.jsonl", asdict(row))
        super().record_participant(row)

    def complete_match(self, match_id: str, status: str, summary: Dict[str, object]) -> None:
        self._append("matches.jsonl", {"match_id": match_id, "event": "completed", "status": status, **summary})
        super().complete_match(match_id, status, summary)

    def upsert_verdict(self, result: JudgeResult) -> None:
        self._append("verdicts.jsonl", asdict(result))
        super().upsert_verdict(result)

    def save_career(self, record: CareerRecord) -> None:
        self._append("careers.jsonl", asdict(record))
        super().save_career(record)


class SafeRecorder:
    """Best-effort front for a MatchStore.

    The first PersistenceUnavailable is logged as a warning; after that the
    recorder stops writing and the match carries on without durable logs.
    """

    def __init__(self, store: Optional[MatchStore]) -> None:
        self.store = store
        self.degraded = store is None
        self._offline_ids = 0

    def _guard(self, fn: Callable[[], T], default: T) -> T:
        if self.degraded or self.store is None:
            return default
        try:
            return fn()
        except PersistenceUnavailable as exc:
            LOGGER.warning("Persistence unavailable, continuing without match logs: %s", exc)
            self.degraded = True
            return default

    def create_match(self, info: Dict[str, object]) -> str:
        self._offline_ids += 1
        offline = f"offline-{self._offline_ids}"
        return self._guard(lambda: self.store.create_match(info), offline)

    def append_action(self, row: ActionLogRow) -> int:
        return self._guard(lambda: self.store.append_action(row), 0)

    def record_rating_point(self, point: RatingPoint) -> None:
        self._guard(lambda: self.store.record_rating_point(point), None)

    def record_participant(self, row: ParticipantRow) -> None:
        self._guard(lambda: self.store.record_participant(row), None)

    def complete_match(self, match_id: str, status: str, summary: Dict[str, object]) -> None:
        self._guard(lambda: self.store.complete_match(match_id, status, summary), None)

    def action_logs(self, match_id: str) -> List[ActionLogRow]:
        return self._guard(lambda: self.store.action_logs(match_id), [])

    def upsert_verdict(self, result: JudgeResult) -> None:
        self._guard(lambda: self.store.upsert_verdict(result), None)

    def career(self, name: str) -> Optional[CareerRecord]:
        return self._guard(lambda: self.store.career(name), None)

    def save_career(self, record: CareerRecord) -> None:
        self._guard(lambda: self.store.save_career(record), None)

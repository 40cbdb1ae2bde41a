"""Post-match decision grading based on exact river equity."""

from .equity import bet_size, ev_bet, ev_call, river_equity
from .judge import EquityJudge, JudgeResult, JudgeSummary

__all__ = [
    "bet_size",
    "ev_bet",
    "ev_call",
    "river_equity",
    "EquityJudge",
    "JudgeResult",
    "JudgeSummary",
]

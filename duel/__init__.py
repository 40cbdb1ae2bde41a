"""Mirrored heads-up duels: runner, decision contract, persistence and host."""

from .config import EloConfig, GlickoConfig, MatchConfig, StopConfig
from .decisions import Decision, DecisionSource, ProbePolicy, fallback_action, validate_decision
from .orchestrator import DuelRunner, MatchResult, MatchStatus, run_round_robin
from .stop import StopToken
from .store import JsonlStore, MatchStore, MemoryStore, SafeRecorder

__all__ = [
    "EloConfig",
    "GlickoConfig",
    "MatchConfig",
    "StopConfig",
    "Decision",
    "DecisionSource",
    "ProbePolicy",
    "fallback_action",
    "validate_decision",
    "DuelRunner",
    "MatchResult",
    "MatchStatus",
    "run_round_robin",
    "StopToken",
    "JsonlStore",
    "MatchStore",
    "MemoryStore",
    "SafeRecorder",
]

"""Rating schemes: a pot-weighted Elo variant and Glicko-2."""

from .elo import EloRatings, outcome_score
from .glicko2 import Glicko2Rating, score_from_margin, score_from_outcome, solve_volatility

__all__ = [
    "EloRatings",
    "outcome_score",
    "Glicko2Rating",
    "score_from_margin",
    "score_from_outcome",
    "solve_volatility",
]

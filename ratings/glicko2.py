"""Glicko-2 ratings (Glickman, "Example of the Glicko-2 system").

Public values live on the familiar 1500 scale; every update converts to the
internal scale (mu, phi), works there, and converts back.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from engine.exceptions import VolatilitySolveError

SCALE = 173.7178
BASE_RATING = 1500.0
CONVERGENCE = 1e-6
# Below this the score term cannot move the volatility; skip the root solve.
NEGLIGIBLE_DELTA = 1e-12
MAX_ITERATIONS = 100
MAX_BRACKET_STEPS = 64


def _g(phi: float) -> float:
    return 1.0 / math.sqrt(1.0 + 3.0 * phi * phi / (math.pi * math.pi))


def _expect(mu: float, mu_j: float, phi_j: float) -> float:
    return 1.0 / (1.0 + math.exp(-_g(phi_j) * (mu - mu_j)))


@dataclass
class Glicko2Rating:
    rating: float = 1500.0
    rd: float = 350.0
    volatility: float = 0.06
    games: int = 0

    @property
    def mu(self) -> float:
        return (self.rating - BASE_RATING) / SCALE

    @property
    def phi(self) -> float:
        return self.rd / SCALE

    def copy(self) -> "Glicko2Rating":
        return Glicko2Rating(self.rating, self.rd, self.volatility, self.games)

    def _store(self, mu: float, phi: float) -> None:
        self.rating = mu * SCALE + BASE_RATING
        self.rd = phi * SCALE

    def age(self) -> None:
        """Rating period with no games: deviation grows, rating stays put."""
        phi_star = math.sqrt(self.phi ** 2 + self.volatility ** 2)
        self._store(self.mu, phi_star)
        self.games += 1

    def update_batch(self, results: Sequence[Tuple["Glicko2Rating", float]], tau: float = 0.5) -> None:
        """Apply one rating period.

        ``results`` holds (opponent, score) pairs; opponents should be their
        values at the start of the period and scores lie in [0, 1].
        """
        if not results:
            self.age()
            return

        mu, phi = self.mu, self.phi
        variance_sum = 0.0
        score_sum = 0.0
        for opponent, score in results:
            g_j = _g(opponent.phi)
            e_j = _expect(mu, opponent.mu, opponent.phi)
            variance_sum += g_j * g_j * e_j * (1.0 - e_j)
            score_sum += g_j * (score - e_j)
        v = 1.0 / variance_sum
        delta = v * score_sum

        if abs(delta) < NEGLIGIBLE_DELTA:
            sigma = self.volatility
        else:
            sigma = solve_volatility(phi, v, delta, self.volatility, tau)

        phi_star = math.sqrt(phi * phi + sigma * sigma)
        phi_new = 1.0 / math.sqrt(1.0 / (phi_star * phi_star) + 1.0 / v)
        mu_new = mu + phi_new * phi_new * score_sum
        self._store(mu_new, phi_new)
        self.volatility = sigma
        self.games += 1

    def update_pair(self, opponent: "Glicko2Rating", score: float, tau: float = 0.5) -> None:
        self.update_batch([(opponent, score)], tau)


def solve_volatility(phi: float, v: float, delta: float, sigma: float, tau: float) -> float:
    """Illinois iteration for the new volatility (step 5 of the paper)."""
    a = math.log(sigma * sigma)

    def f(x: float) -> float:
        ex = math.exp(x)
        num = ex * (delta * delta - phi * phi - v - ex)
        den = 2.0 * (phi * phi + v + ex) ** 2
        return num / den - (x - a) / (tau * tau)

    lower = a
    if delta * delta > phi * phi + v:
        upper = math.log(delta * delta - phi * phi - v)
    else:
        k = 1
        while f(a - k * tau) < 0:
            k += 1
            if k > MAX_BRACKET_STEPS:
                raise VolatilitySolveError("Could not bracket the volatility root")
        upper = a - k * tau

    f_lower = f(lower)
    f_upper = f(upper)
    for _ in range(MAX_ITERATIONS):
        if abs(upper - lower) <= CONVERGENCE:
            return math.exp(lower / 2.0)
        c = lower + (lower - upper) * f_lower / (f_upper - f_lower)
        f_c = f(c)
        if not math.isfinite(f_c):
            raise VolatilitySolveError(f"Volatility iteration diverged at x={c}")
        if f_c * f_upper <= 0:
            lower, f_lower = upper, f_upper
        else:
            f_lower /= 2.0
        upper, f_upper = c, f_c
    raise VolatilitySolveError(f"Volatility did not converge in {MAX_ITERATIONS} iterations")


def score_from_outcome(win: bool, tie: bool = False) -> float:
    if tie:
        return 0.5
    return 1.0 if win else 0.0


def score_from_margin(chips: int, effective_stack: float, steepness: float = 1.0) -> float:
    """Map a chip margin to a score in [0, 1] through tanh."""
    if effective_stack <= 0:
        return 0.5
    return 0.5 + 0.5 * math.tanh(steepness * chips / effective_stack)

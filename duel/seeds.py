from __future__ import annotations

import os
import secrets
import time
from typing import Optional

MASK64 = 0xFFFFFFFFFFFFFFFF


class SeedStream:
    """splitmix64: one deterministic deck seed per mirrored pair."""

    def __init__(self, base: int) -> None:
        self.state = base & MASK64

    def next(self) -> int:
        self.state = (self.state + 0x9E3779B97F4A7C15) & MASK64
        z = self.state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
        return z ^ (z >> 31)


def secure_base_seed() -> int:
    return (secrets.randbits(64) ^ time.time_ns() ^ os.getpid()) & MASK64


def resolve_base_seed(seed: Optional[int]) -> int:
    if seed is None:
        return secure_base_seed()
    return seed & MASK64

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Optional

from .config import StopConfig

LOGGER = logging.getLogger("duel_runner")


class StopToken:
    """Cancellation token threaded through a match.

    A graceful stop lets the current pair finish; an immediate stop aborts the
    hand in flight and cancels any pending decision request.
    """

    def __init__(self, config: Optional[StopConfig] = None) -> None:
        self.config = config or StopConfig()
        self.started = time.monotonic()
        self.requested = False
        self.immediate = self.config.immediate
        self._immediate_event = asyncio.Event()

    def request(self, immediate: Optional[bool] = None) -> None:
        if immediate is not None:
            self.immediate = immediate
        if not self.requested:
            LOGGER.info("Stop requested (%s)", "immediate" if self.immediate else "graceful")
        self.requested = True
        if self.immediate:
            self._immediate_event.set()

    def poll(self) -> bool:
        if self.requested:
            return True
        limit = self.config.max_seconds
        if limit and time.monotonic() - self.started >= limit:
            LOGGER.info("Time limit of %.0fs reached", limit)
            self.request()
        elif self.config.stop_file and os.path.exists(self.config.stop_file):
            LOGGER.info("Stop file %s found", self.config.stop_file)
            self.request()
        return self.requested

    def should_abort(self) -> bool:
        return self.poll() and self.immediate

    async def wait_immediate(self) -> None:
        """Return once an immediate stop is in effect."""
        while not self.should_abort():
            try:
                await asyncio.wait_for(self._immediate_event.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                continue

"""
Per-address connection abuse gate.

Fixed window counters held in process memory. An address may make
``max_attempts`` connection attempts per window; further attempts are
rejected until the window rolls over. Rolled-over windows are swept at most
once per window length, on the next attempt from any address.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int = 0
    logged: Set[str] = field(default_factory=set)


class ConnectionRateLimiter:
    def __init__(
        self,
        window_seconds: float = 60,
        max_attempts: int = 5,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self._clock = clock or time.monotonic
        self._windows: Dict[str, _Window] = {}
        self._last_prune = self._clock()

    def _current(self, address: str) -> _Window:
        now = self._clock()
        window = self._windows.get(address)
        if window is None or now - window.started_at >= self.window_seconds:
            window = _Window(started_at=now)
            self._windows[address] = window
        return window

    def hit(self, address: str) -> bool:
        """Record one attempt. Returns False once the address is over its ceiling."""
        if self._clock() - self._last_prune >= self.window_seconds:
            self.prune()
        window = self._current(address)
        window.count += 1
        return window.count <= self.max_attempts

    def should_log(self, address: str, reason: str) -> bool:
        """True the first time ``reason`` is seen for ``address`` in this window."""
        window = self._current(address)
        if reason in window.logged:
            return False
        window.logged.add(reason)
        return True

    def warn_once(self, address: str, reason: str, msg: str, *args) -> None:
        if self.should_log(address, reason):
            logger.warning(msg, *args)

    def prune(self) -> int:
        """Drop windows that have rolled over; returns how many were removed."""
        now = self._last_prune = self._clock()
        expired = [
            address
            for address, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for address in expired:
            del self._windows[address]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)

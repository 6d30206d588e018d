from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from itertools import count
from threading import Lock

from .errors import ConfigError


@dataclass(frozen=True)
class Outcome:
    seq: int
    success: bool


class TensionSensor:
    """Sliding window of recent outcomes and the tension derived from it.

    tension = 1 - successes / total over the current window, or 0.0 while the
    window holds fewer than ``min_samples`` outcomes. A running success count
    is adjusted on insert/evict so reads are O(1).
    """

    def __init__(self, window_capacity: int = 100, min_samples: int = 10) -> None:
        if window_capacity < 1:
            raise ConfigError(f"window_capacity must be >= 1, got {window_capacity}")
        if min_samples < 0:
            raise ConfigError(f"min_samples must be >= 0, got {min_samples}")
        self.window_capacity = int(window_capacity)
        self.min_samples = int(min_samples)
        self._lock = Lock()
        self._window: deque[Outcome] = deque()
        self._successes = 0
        self._seq = count(1)

    def record(self, success: bool) -> Outcome:
        with self._lock:
            outcome = Outcome(seq=next(self._seq), success=bool(success))
            if len(self._window) >= self.window_capacity:
                evicted = self._window.popleft()
                if evicted.success:
                    self._successes -= 1
            self._window.append(outcome)
            if outcome.success:
                self._successes += 1
            return outcome

    def tension(self) -> float:
        with self._lock:
            total = len(self._window)
            successes = self._successes
        if total == 0 or total < self.min_samples:
            return 0.0
        return min(1.0, max(0.0, 1.0 - successes / total))

    def window(self) -> tuple[Outcome, ...]:
        """Oldest first."""
        with self._lock:
            return tuple(self._window)

    def reset(self) -> None:
        with self._lock:
            self._window.clear()
            self._successes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._window)

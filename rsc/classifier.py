from __future__ import annotations

from enum import Enum, IntEnum

from .errors import ConfigError


class BalanceState(IntEnum):
    # Ordered by tension: NOMINAL < OBSERVING < DEGRADED.
    NOMINAL = 0
    OBSERVING = 1
    DEGRADED = 2

    @property
    def label(self) -> str:
        return self.name.lower()


class ExecutionPath(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class BalanceClassifier:
    """Maps a tension value to a BalanceState and picks an execution path.

    Boundary values belong to the higher bucket: ``tension == low`` is
    OBSERVING and ``tension == high`` is DEGRADED.
    """

    def __init__(self, low: float = 0.3, high: float = 0.6) -> None:
        if not (0.0 <= low < high <= 1.0):
            raise ConfigError(f"thresholds must satisfy 0 <= low < high <= 1, got low={low} high={high}")
        self.low = float(low)
        self.high = float(high)

    def classify(self, tension: float, balance_score: float | None = None) -> BalanceState:
        """Classify tension, optionally raised by a structural variance metric.

        When ``balance_score`` is given the larger of the two signals is used,
        so structural imbalance can push the state up but never down.
        """
        level = float(tension)
        if balance_score is not None:
            level = max(level, float(balance_score))
        if level >= self.high:
            return BalanceState.DEGRADED
        if level >= self.low:
            return BalanceState.OBSERVING
        return BalanceState.NOMINAL

    @staticmethod
    def select_path(state: BalanceState) -> ExecutionPath:
        if state is BalanceState.DEGRADED:
            return ExecutionPath.FALLBACK
        return ExecutionPath.PRIMARY

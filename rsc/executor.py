from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .classifier import BalanceClassifier, BalanceState, ExecutionPath
from .errors import BothFailed, FallbackFailure, OperationFailure, PrimaryFailure
from .events import EventLog, level_number
from .sensor import TensionSensor

logger = logging.getLogger(__name__)

Operation = Callable[[Any], Any]

SWITCHED_TO_FALLBACK = "switched_to_fallback"
SKIPPED_PRIMARY = "skipped_primary"


@dataclass(frozen=True)
class ExecutionResult:
    value: Any
    state: BalanceState
    tension: float
    path: ExecutionPath
    rebalance_action: str | None = None


class ResilientExecutor:
    """Runs a primary operation with an automatic fallback.

    Path selection follows the classifier: NOMINAL and OBSERVING try the
    primary first, DEGRADED goes straight to the fallback.

    Outcome accounting (one sensor record per leg actually run):
      - primary leg records its own success or failure
      - a fallback that rescues a failed primary records a failure, since the
        call was served degraded
      - a direct fallback (DEGRADED) records its own result, which lets the
        tension decay once the fallback keeps the system afloat
    """

    def __init__(
        self,
        primary: Operation,
        fallback: Operation,
        sensor: TensionSensor | None = None,
        classifier: BalanceClassifier | None = None,
        failure_predicate: Callable[[Any], bool] | None = None,
        events: EventLog | None = None,
        structural_signal: Callable[[], float] | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.sensor = sensor if sensor is not None else TensionSensor()
        self.classifier = classifier if classifier is not None else BalanceClassifier()
        self.failure_predicate = failure_predicate
        self.events = events
        self.structural_signal = structural_signal

    def current_state(self) -> tuple[BalanceState, float]:
        tension = self.sensor.tension()
        score = self.structural_signal() if self.structural_signal else None
        return self.classifier.classify(tension, score), tension

    def execute(self, payload: Any = None) -> ExecutionResult:
        state, tension = self.current_state()
        path = self.classifier.select_path(state)

        if path is ExecutionPath.FALLBACK:
            return self._direct_fallback(payload, state, tension)

        try:
            value = self._run(self.primary, payload, PrimaryFailure, "primary")
        except PrimaryFailure as primary_err:
            self.sensor.record(False)
            return self._rescue(payload, tension, primary_err)

        self.sensor.record(True)
        return ExecutionResult(value=value, state=state, tension=tension, path=ExecutionPath.PRIMARY)

    def _rescue(self, payload: Any, tension: float, primary_err: PrimaryFailure) -> ExecutionResult:
        try:
            value = self._run(self.fallback, payload, FallbackFailure, "fallback")
        except FallbackFailure as fallback_err:
            self.sensor.record(False)
            self._log("ERROR", "Primary and fallback both failed", primary=str(primary_err), fallback=str(fallback_err))
            raise BothFailed(primary_err, fallback_err) from primary_err

        self.sensor.record(False)
        self._log("WARN", "Primary failed; switched to fallback", tension=round(tension, 4), error=str(primary_err))
        return ExecutionResult(
            value=value,
            state=BalanceState.DEGRADED,
            tension=tension,
            path=ExecutionPath.FALLBACK,
            rebalance_action=SWITCHED_TO_FALLBACK,
        )

    def _direct_fallback(self, payload: Any, state: BalanceState, tension: float) -> ExecutionResult:
        try:
            value = self._run(self.fallback, payload, FallbackFailure, "fallback")
        except FallbackFailure:
            self.sensor.record(False)
            self._log("ERROR", "Fallback failed with primary skipped", tension=round(tension, 4))
            raise
        self.sensor.record(True)
        self._log("INFO", "Primary skipped under high tension", tension=round(tension, 4))
        return ExecutionResult(
            value=value,
            state=state,
            tension=tension,
            path=ExecutionPath.FALLBACK,
            rebalance_action=SKIPPED_PRIMARY,
        )

    def _run(self, op: Operation, payload: Any, failure: type[OperationFailure], leg: str) -> Any:
        try:
            value = op(payload)
        except Exception as e:
            raise failure(f"{leg} raised {type(e).__name__}: {e}", cause=e) from e
        if self.failure_predicate is not None and self.failure_predicate(value):
            raise failure(f"{leg} returned a failure result: {value!r}", result=value)
        return value

    def _log(self, level: str, message: str, **context: Any) -> None:
        if self.events is not None:
            self.events.log_event(level, message, **context)
        else:
            logger.log(level_number(level), "%s %s", message, context)

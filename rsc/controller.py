from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .classifier import BalanceClassifier, BalanceState
from .events import EventLog
from .executor import ExecutionResult, Operation, ResilientExecutor
from .sensor import TensionSensor
from .settings import Settings
from .tree import LoadBalancingTree, NodeRef, Transfer


@dataclass(frozen=True)
class ControllerStatus:
    state: BalanceState
    tension: float
    balance_score: float

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state.label, "tension": self.tension, "balance_score": self.balance_score}


class ResilienceController:
    """One sensor, classifier, executor and tree wired from a Settings object."""

    def __init__(
        self,
        primary: Operation,
        fallback: Operation,
        config: Settings | None = None,
        capacities: tuple[float, ...] = (),
        failure_predicate: Callable[[Any], bool] | None = None,
    ) -> None:
        self.config = (config or Settings()).validate()
        self.events = EventLog(self.config.event_log_size)
        self.sensor = TensionSensor(self.config.window_capacity, self.config.min_samples)
        self.classifier = BalanceClassifier(self.config.tension_low, self.config.tension_high)
        self.tree = LoadBalancingTree(
            default_node_capacity=self.config.default_node_capacity,
            rebalance_variance_threshold=self.config.rebalance_variance_threshold,
            capacities=capacities,
            events=self.events,
        )
        self.executor = ResilientExecutor(
            primary,
            fallback,
            sensor=self.sensor,
            classifier=self.classifier,
            failure_predicate=failure_predicate,
            events=self.events,
        )

    def execute(self, payload: Any = None) -> ExecutionResult:
        return self.executor.execute(payload)

    def route(self, weight: float) -> NodeRef:
        return self.tree.route(weight)

    def release(self, node_id: int, weight: float) -> float:
        return self.tree.release(node_id, weight)

    def rebalance(self) -> list[Transfer]:
        return self.tree.rebalance()

    def status(self) -> ControllerStatus:
        """Read-only health snapshot. Never fed back into decisions."""
        tension = self.sensor.tension()
        return ControllerStatus(
            state=self.classifier.classify(tension),
            tension=tension,
            balance_score=self.tree.balance_score(),
        )

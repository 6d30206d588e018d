from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from threading import RLock
from typing import Iterable, Iterator

from .errors import CapacityExhausted, ConfigError
from .events import EventLog, level_number

logger = logging.getLogger(__name__)

EPS = 1e-9


def _check_weight(weight: float) -> float:
    weight = float(weight)
    if not math.isfinite(weight):
        raise ValueError(f"weight must be a finite number, got {weight}")
    return weight


def _solve(fn, target: float, lo: float, hi: float, decreasing: bool = False, rounds: int = 100) -> float:
    """Bisect for the level where monotone ``fn`` reaches ``target``.

    Returns the bracket end on the safe side, where ``fn`` does not exceed
    ``target``.
    """
    for _ in range(rounds):
        mid = (lo + hi) / 2.0
        if (fn(mid) > target) != decreasing:
            hi = mid
        else:
            lo = mid
    return hi if decreasing else lo


class NodeState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    SATURATED = "saturated"


@dataclass
class WeightedNode:
    id: int
    capacity: float
    parent_id: int | None = None  # lookup only, the tree owns every node
    load: float = 0.0
    children: list[int] = field(default_factory=list)

    @property
    def load_pct(self) -> float:
        return self.load / self.capacity

    @property
    def spare(self) -> float:
        return max(0.0, self.capacity - self.load)

    @property
    def state(self) -> NodeState:
        if self.load <= EPS:
            return NodeState.IDLE
        if self.load >= self.capacity - EPS:
            return NodeState.SATURATED
        return NodeState.LOADED

    def can_accept(self, weight: float) -> bool:
        return self.load + weight <= self.capacity + EPS

    def accept(self, weight: float) -> None:
        if not self.can_accept(weight):
            raise CapacityExhausted(
                f"node {self.id} cannot take {weight} (load {self.load} / capacity {self.capacity})"
            )
        self.load = min(self.capacity, self.load + weight)


@dataclass(frozen=True)
class NodeRef:
    id: int
    parent_id: int | None
    capacity: float
    load: float
    state: NodeState
    children: tuple[int, ...] = ()

    @property
    def load_pct(self) -> float:
        return self.load / self.capacity


@dataclass(frozen=True)
class Transfer:
    source: int
    target: int
    amount: float
    reason: str


def _ref(node: WeightedNode) -> NodeRef:
    return NodeRef(
        id=node.id,
        parent_id=node.parent_id,
        capacity=node.capacity,
        load=node.load,
        state=node.state,
        children=tuple(node.children),
    )


class LoadBalancingTree:
    """Hierarchy of capacity-bounded worker nodes.

    Nodes live in an id-indexed arena owned by the tree; parent links are ids.
    The root is the coordinator: it never holds load and is not part of the
    balance score. Every other node, leaf or internal, is a worker.

    All mutation (route, release, rebalance, add_node) happens under one
    re-entrant lock, so a rebalance pass is single-flight and concurrent
    routes see either the pre- or post-rebalance loads.
    """

    def __init__(
        self,
        default_node_capacity: float = 100.0,
        rebalance_variance_threshold: float = 0.3,
        capacities: Iterable[float] = (),
        events: EventLog | None = None,
    ) -> None:
        if default_node_capacity <= 0:
            raise ConfigError(f"default_node_capacity must be > 0, got {default_node_capacity}")
        if not (0.0 <= rebalance_variance_threshold <= 1.0):
            raise ConfigError(
                f"rebalance_variance_threshold must be within [0, 1], got {rebalance_variance_threshold}"
            )
        self.default_node_capacity = float(default_node_capacity)
        self.rebalance_variance_threshold = float(rebalance_variance_threshold)
        self.events = events
        self._lock = RLock()
        self._nodes: dict[int, WeightedNode] = {}
        # lender id -> {borrower id: load moved there and not yet returned}
        self._lent: dict[int, dict[int, float]] = {}
        self._ids = count(0)
        self.root_id = self._create(None, self.default_node_capacity).id
        for cap in capacities:
            self.add_node(self.root_id, cap)

    # --- construction -------------------------------------------------

    def add_node(self, parent_id: int, capacity: float) -> NodeRef:
        if capacity <= 0:
            raise ConfigError(f"node capacity must be > 0, got {capacity}")
        with self._lock:
            self._get(parent_id)
            return _ref(self._create(parent_id, float(capacity)))

    def _create(self, parent_id: int | None, capacity: float) -> WeightedNode:
        node = WeightedNode(id=next(self._ids), capacity=capacity, parent_id=parent_id)
        self._nodes[node.id] = node
        if parent_id is not None:
            self._nodes[parent_id].children.append(node.id)
        return node

    def _get(self, node_id: int) -> WeightedNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"unknown node {node_id}") from None

    # --- queries ------------------------------------------------------

    def node(self, node_id: int) -> NodeRef:
        with self._lock:
            return _ref(self._get(node_id))

    def nodes(self) -> list[NodeRef]:
        """Snapshot of every node, depth-first from the root."""
        with self._lock:
            return [_ref(n) for n in self._walk()]

    def workers(self) -> list[NodeRef]:
        with self._lock:
            return [_ref(n) for n in self._walk() if n.id != self.root_id]

    def balance_score(self) -> float:
        """Population variance of worker load percentages, clamped to [0, 1]."""
        with self._lock:
            pcts = [n.load_pct for n in self._walk() if n.id != self.root_id]
        if len(pcts) < 2:
            return 0.0
        mean = sum(pcts) / len(pcts)
        var = sum((p - mean) ** 2 for p in pcts) / len(pcts)
        return min(1.0, max(0.0, var))

    def _walk(self) -> Iterator[WeightedNode]:
        stack = [self.root_id]
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def _post_order(self) -> list[WeightedNode]:
        out: list[WeightedNode] = []

        def visit(node_id: int) -> None:
            node = self._nodes[node_id]
            for child in node.children:
                visit(child)
            out.append(node)

        visit(self.root_id)
        return out

    # --- routing ------------------------------------------------------

    def route(self, weight: float) -> NodeRef:
        """Place ``weight`` on the worker that keeps load percentages most even.

        Among workers that can take the weight, picks the one whose
        post-acceptance load percentage deviates least from the post-acceptance
        average (ties: lowest id). If none can, grows a new worker under the
        root with the default capacity.
        """
        weight = _check_weight(weight)
        if weight <= 0:
            raise ValueError(f"weight must be > 0, got {weight}")

        with self._lock:
            workers = [n for n in self._walk() if n.id != self.root_id]
            candidates = [n for n in workers if n.can_accept(weight)]

            if not candidates:
                if weight > self.default_node_capacity + EPS:
                    raise CapacityExhausted(
                        f"weight {weight} exceeds the maximum node capacity {self.default_node_capacity}"
                    )
                node = self._create(self.root_id, self.default_node_capacity)
                node.accept(weight)
                self._log("WARN", "No capacity left; grew a new node", node=node.id, weight=weight)
            else:
                total_pct = sum(n.load_pct for n in workers)
                count_ = len(workers)

                def deviation(n: WeightedNode) -> tuple[float, int]:
                    new_pct = (n.load + weight) / n.capacity
                    avg = (total_pct - n.load_pct + new_pct) / count_
                    return abs(new_pct - avg), n.id

                node = min(candidates, key=deviation)
                node.accept(weight)

            if node.state is NodeState.SATURATED:
                self._relieve(node)
            return _ref(node)

    def release(self, node_id: int, weight: float) -> float:
        """Remove finished work routed to ``node_id``.

        Load that relief or rebalancing moved off the node is followed through
        the lending ledger, so releasing what ``route`` placed drains it from
        wherever it now sits. Returns the amount actually released.
        """
        weight = _check_weight(weight)
        if weight < 0:
            raise ValueError(f"weight must be >= 0, got {weight}")
        with self._lock:
            return self._drain(self._get(node_id), weight, set())

    def _drain(self, node: WeightedNode, weight: float, seen: set[int]) -> float:
        seen.add(node.id)
        taken = min(weight, node.load)
        node.load -= taken
        remaining = weight - taken
        lent = self._lent.get(node.id, {})
        for target_id in list(lent):
            if remaining <= EPS:
                break
            if target_id in seen:
                continue
            owed = min(lent[target_id], remaining)
            got = self._drain(self._nodes[target_id], owed, seen)
            lent[target_id] -= owed
            if lent[target_id] <= EPS:
                del lent[target_id]
            taken += got
            remaining -= got
        return taken

    def _relieve(self, node: WeightedNode) -> Transfer | None:
        """Ask the parent to move load off a saturated node onto a sibling.

        The amount equalizes the pair's load percentages, bounded by the
        sibling's spare capacity.
        """
        if node.parent_id is None:
            return None
        parent = self._nodes[node.parent_id]
        siblings = [
            self._nodes[c] for c in parent.children if c != node.id and self._nodes[c].spare > EPS
        ]
        if not siblings:
            self._log("WARN", "Node saturated and no sibling has spare capacity", node=node.id)
            return None
        target = min(siblings, key=lambda s: (s.load_pct, s.id))
        amount = (node.load * target.capacity - target.load * node.capacity) / (node.capacity + target.capacity)
        if amount <= EPS:
            return None
        return self._transfer(node, target, amount, "saturation_relief")

    # --- rebalancing --------------------------------------------------

    def rebalance(self) -> list[Transfer]:
        """One bottom-up pass over every sibling group.

        A node whose load percentage exceeds its group's average by more than
        the variance threshold gives up half of that excess. Givers are
        lowered from the top and receivers raised from the bottom as level
        blocks, so no sibling overtakes another, receivers never pass the
        pre-transfer average and no gap between two siblings grows.
        """
        transfers: list[Transfer] = []
        with self._lock:
            for parent in self._post_order():
                group = [self._nodes[c] for c in parent.children]
                if len(group) >= 2:
                    transfers.extend(self._rebalance_group(group))
        if transfers:
            self._log(
                "INFO",
                "Rebalance moved load between siblings",
                transfers=len(transfers),
                amount=round(sum(t.amount for t in transfers), 6),
            )
        return transfers

    def _rebalance_group(self, group: list[WeightedNode]) -> list[Transfer]:
        avg = sum(n.load_pct for n in group) / len(group)
        donors = [n for n in group if n.load_pct - avg > self.rebalance_variance_threshold]
        if not donors:
            return []
        others = [n for n in group if n not in donors]
        receivers = [n for n in others if n.load_pct < avg - EPS]
        # Givers never drop below a sibling that sits above the average.
        floor = max([avg] + [n.load_pct for n in others if n.load_pct >= avg])
        targets = {d.id: max((d.load_pct + avg) / 2.0, floor) for d in donors}

        supply = sum((d.load_pct - targets[d.id]) * d.capacity for d in donors)
        room = sum((avg - r.load_pct) * r.capacity for r in receivers)
        amount = min(supply, room)
        if amount <= EPS:
            return []

        def given(level: float) -> float:
            return sum((d.load_pct - max(targets[d.id], level)) * d.capacity for d in donors)

        def taken(level: float) -> float:
            return sum((max(r.load_pct, level) - r.load_pct) * r.capacity for r in receivers)

        top = float("-inf")
        if amount < supply - EPS:
            top = _solve(given, amount, min(targets.values()), max(d.load_pct for d in donors), decreasing=True)
        bottom = _solve(taken, amount, min(r.load_pct for r in receivers), avg)

        gives = [
            [d, (d.load_pct - max(targets[d.id], top)) * d.capacity]
            for d in sorted(donors, key=lambda n: (-n.load_pct, n.id))
        ]
        takes = [
            [r, (max(r.load_pct, bottom) - r.load_pct) * r.capacity]
            for r in sorted(receivers, key=lambda n: (n.load_pct, n.id))
        ]

        moved: list[Transfer] = []
        i = j = 0
        while i < len(gives) and j < len(takes):
            step = min(gives[i][1], takes[j][1])
            if step > EPS:
                moved.append(self._transfer(gives[i][0], takes[j][0], step, "rebalance"))
            gives[i][1] -= step
            takes[j][1] -= step
            if gives[i][1] <= EPS:
                i += 1
            if takes[j][1] <= EPS:
                j += 1
        return moved

    def _transfer(self, source: WeightedNode, target: WeightedNode, amount: float, reason: str) -> Transfer:
        amount = min(amount, source.load, target.spare)
        source.load -= amount
        target.load += amount
        self._record_loan(source.id, target.id, amount)
        if reason != "rebalance":
            self._log("INFO", "Moved load to relieve saturated node", source=source.id, target=target.id, amount=amount)
        return Transfer(source=source.id, target=target.id, amount=amount, reason=reason)

    def _record_loan(self, source_id: int, target_id: int, amount: float) -> None:
        # Moving load back to a node that lent it settles that debt first.
        back = self._lent.get(target_id, {})
        settle = min(back.get(source_id, 0.0), amount)
        if settle > 0:
            back[source_id] -= settle
            if back[source_id] <= EPS:
                del back[source_id]
        rest = amount - settle
        if rest > EPS:
            lent = self._lent.setdefault(source_id, {})
            lent[target_id] = lent.get(target_id, 0.0) + rest

    def _log(self, level: str, message: str, **context) -> None:
        if self.events is not None:
            self.events.log_event(level, message, **context)
        else:
            logger.log(level_number(level), "%s %s", message, context)

from __future__ import annotations

import logging
import time
from threading import Event, Thread

from .tree import LoadBalancingTree, Transfer

logger = logging.getLogger(__name__)


class Rebalancer:
    """Runs tree.rebalance() periodically on a daemon thread."""

    def __init__(self, tree: LoadBalancingTree, interval_s: float = 5.0):
        self.tree = tree
        self.interval_s = max(0.01, float(interval_s))
        self._stop = Event()
        self._thr: Thread | None = None
        self.passes = 0

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, name="rsc-rebalancer", daemon=True)
        self._thr.start()

    def stop(self, timeout_s: float | None = None) -> None:
        self._stop.set()
        if self._thr is not None:
            self._thr.join(timeout_s)

    @property
    def running(self) -> bool:
        return bool(self._thr and self._thr.is_alive())

    def _loop(self) -> None:
        logger.info("Rebalancer started (every %.2fs)", self.interval_s)
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error("Rebalance tick failed: %s: %s", type(e).__name__, e)
            self._stop.wait(self.interval_s)
        logger.info("Rebalancer stopped")

    def tick(self) -> list[Transfer]:
        started = time.time()
        transfers = self.tree.rebalance()
        self.passes += 1
        if transfers:
            logger.debug(
                "Rebalance pass %d moved %d transfers in %.1fms",
                self.passes,
                len(transfers),
                (time.time() - started) * 1000.0,
            )
        return transfers

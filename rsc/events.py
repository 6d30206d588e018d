from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from threading import Lock
from typing import Any

from .errors import ConfigError

logger = logging.getLogger(__name__)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def level_number(level: str) -> int:
    return _LEVELS.get(level.upper(), logging.INFO)


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Event:
    id: int
    ts: str
    level: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Bounded in-memory journal of autonomous actions.

    Entries are also forwarded to the standard logging module so that the
    process log and the queryable journal never disagree.
    """

    def __init__(self, max_events: int = 500) -> None:
        if max_events < 1:
            raise ConfigError(f"max_events must be >= 1, got {max_events}")
        self._lock = Lock()
        self._events: deque[Event] = deque(maxlen=max_events)
        self._ids = count(1)

    def log_event(self, level: str, message: str, **context: Any) -> Event:
        level = level.upper()
        with self._lock:
            ev = Event(id=next(self._ids), ts=utc_now(), level=level, message=message, context=dict(context))
            self._events.append(ev)
        logger.log(level_number(level), "%s %s", message, context or "")
        return ev

    def latest(self, limit: int = 100) -> list[Event]:
        """Newest first, like an ORDER BY id DESC query."""
        with self._lock:
            items = list(self._events)
        items.reverse()
        return items[: max(0, int(limit))]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ConfigError


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    # Tension sensing
    window_capacity: int = _env_int("RSC_WINDOW_CAPACITY", 100)
    min_samples: int = _env_int("RSC_MIN_SAMPLES", 10)

    # Classification thresholds
    tension_low: float = _env_float("RSC_TENSION_LOW", 0.3)
    tension_high: float = _env_float("RSC_TENSION_HIGH", 0.6)

    # Load balancing tree
    default_node_capacity: float = _env_float("RSC_DEFAULT_NODE_CAPACITY", 100.0)
    rebalance_variance_threshold: float = _env_float("RSC_REBALANCE_VARIANCE_THRESHOLD", 0.3)
    rebalance_interval_s: float = _env_float("RSC_REBALANCE_INTERVAL_S", 5.0)

    # Reporting
    event_log_size: int = _env_int("RSC_EVENT_LOG_SIZE", 500)

    # Bundled HTTP service (optional)
    primary_url: str | None = _env_str("RSC_PRIMARY_URL")
    fallback_url: str | None = _env_str("RSC_FALLBACK_URL")
    http_timeout_s: float = _env_float("RSC_HTTP_TIMEOUT_S", 2.0)

    def validate(self) -> "Settings":
        """Raise ConfigError on the first invalid option, otherwise return self."""
        if self.window_capacity < 1:
            raise ConfigError(f"window_capacity must be >= 1, got {self.window_capacity}")
        if self.min_samples < 0:
            raise ConfigError(f"min_samples must be >= 0, got {self.min_samples}")
        if not (0.0 <= self.tension_low < self.tension_high <= 1.0):
            raise ConfigError(
                f"thresholds must satisfy 0 <= low < high <= 1, got low={self.tension_low} high={self.tension_high}"
            )
        if self.default_node_capacity <= 0:
            raise ConfigError(f"default_node_capacity must be > 0, got {self.default_node_capacity}")
        if not (0.0 <= self.rebalance_variance_threshold <= 1.0):
            raise ConfigError(
                f"rebalance_variance_threshold must be within [0, 1], got {self.rebalance_variance_threshold}"
            )
        if self.rebalance_interval_s <= 0:
            raise ConfigError(f"rebalance_interval_s must be > 0, got {self.rebalance_interval_s}")
        if self.event_log_size < 1:
            raise ConfigError(f"event_log_size must be >= 1, got {self.event_log_size}")
        if self.http_timeout_s <= 0:
            raise ConfigError(f"http_timeout_s must be > 0, got {self.http_timeout_s}")
        return self


settings = Settings()

import pytest

from rsc.classifier import BalanceState
from rsc.controller import ResilienceController
from rsc.errors import ConfigError
from rsc.settings import Settings, _env_float, _env_int, _env_str


def _settings(**overrides) -> Settings:
    base = dict(
        window_capacity=10,
        min_samples=4,
        tension_low=0.3,
        tension_high=0.6,
        default_node_capacity=10.0,
        rebalance_variance_threshold=0.3,
    )
    base.update(overrides)
    return Settings(**base)


def _failing(_payload):
    raise RuntimeError("nope")


def test_status_snapshot_reflects_sensor_and_tree():
    ctl = ResilienceController(lambda p: p, lambda p: "fallback", config=_settings(), capacities=(10, 10))
    st = ctl.status()
    assert st.state is BalanceState.NOMINAL
    assert st.tension == 0.0
    assert st.balance_score == 0.0

    ctl.route(4)
    assert ctl.status().balance_score > 0
    assert ctl.status().as_dict()["state"] == "nominal"


def test_controller_degrades_and_records_events():
    ctl = ResilienceController(_failing, lambda p: "fallback", config=_settings())
    assert ctl.executor.sensor is ctl.sensor
    assert ctl.executor.classifier is ctl.classifier
    for _ in range(2):
        assert ctl.execute().value == "fallback"
    st = ctl.status()
    assert st.tension == 1.0
    assert st.state is BalanceState.DEGRADED
    assert ctl.execute().rebalance_action == "skipped_primary"
    assert len(ctl.events) >= 3


def test_status_is_read_only():
    ctl = ResilienceController(lambda p: p, lambda p: p, config=_settings())
    for _ in range(5):
        ctl.status()
    assert len(ctl.sensor) == 0
    assert len(ctl.events) == 0


def test_route_release_rebalance_passthrough():
    ctl = ResilienceController(lambda p: p, lambda p: p, config=_settings(), capacities=(10, 10))
    ref = ctl.route(3)
    assert ctl.release(ref.id, 3) == 3
    assert ctl.rebalance() == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_capacity": 0},
        {"min_samples": -1},
        {"tension_low": 0.7},
        {"tension_high": 1.2},
        {"default_node_capacity": 0},
        {"rebalance_variance_threshold": -0.1},
        {"rebalance_interval_s": 0},
        {"event_log_size": 0},
        {"http_timeout_s": 0},
    ],
)
def test_invalid_settings_fail_eagerly(overrides):
    with pytest.raises(ConfigError):
        ResilienceController(lambda p: p, lambda p: p, config=_settings(**overrides))


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("RSC_TEST_INT", "12")
    monkeypatch.setenv("RSC_TEST_FLOAT", "not-a-number")
    monkeypatch.setenv("RSC_TEST_STR", "  http://primary  ")
    assert _env_int("RSC_TEST_INT", 1) == 12
    assert _env_int("RSC_TEST_MISSING", 7) == 7
    assert _env_float("RSC_TEST_FLOAT", 0.5) == 0.5
    assert _env_str("RSC_TEST_STR") == "http://primary"
    assert _env_str("RSC_TEST_MISSING") is None


def test_configured_window_drives_execution_and_status():
    ctl = ResilienceController(_failing, lambda p: "fallback", config=_settings(window_capacity=6, min_samples=2))
    ctl.execute()
    assert ctl.sensor.window_capacity == 6
    assert len(ctl.sensor) == 2
    assert ctl.status().tension == ctl.executor.sensor.tension() == 1.0
    assert ctl.execute().rebalance_action == "skipped_primary"
    assert ctl.status().state is BalanceState.DEGRADED

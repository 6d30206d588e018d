import pytest

from rsc.classifier import BalanceClassifier, BalanceState, ExecutionPath
from rsc.errors import BothFailed, FallbackFailure, PrimaryFailure
from rsc.executor import SKIPPED_PRIMARY, SWITCHED_TO_FALLBACK, ResilientExecutor
from rsc.sensor import TensionSensor


class Op:
    """Callable that counts invocations and either returns or raises."""

    def __init__(self, result=None, exc: Exception | None = None):
        self.result = result
        self.exc = exc
        self.calls = []

    def __call__(self, payload):
        self.calls.append(payload)
        if self.exc is not None:
            raise self.exc
        return self.result if self.result is not None else payload


def _degraded_sensor() -> TensionSensor:
    s = TensionSensor(window_capacity=100, min_samples=10)
    for _ in range(10):
        s.record(False)
    return s


def test_primary_success_never_touches_fallback():
    primary, fallback = Op(), Op()
    ex = ResilientExecutor(primary, fallback)
    for payload in ["a", 1, {"k": "v"}, None]:
        res = ex.execute(payload)
        assert res.state is BalanceState.NOMINAL
        assert res.path is ExecutionPath.PRIMARY
        assert res.rebalance_action is None
        assert res.value == payload
    assert fallback.calls == []
    assert len(ex.sensor) == 4


def test_primary_failure_switches_then_skips_under_high_tension(events):
    primary = Op(exc=RuntimeError("down"))
    fallback = Op(result="cached")
    ex = ResilientExecutor(primary, fallback, events=events)

    first = ex.execute("x")
    assert first.tension == 0.0
    assert first.value == "cached"
    assert first.state is BalanceState.DEGRADED
    assert first.rebalance_action == SWITCHED_TO_FALLBACK
    assert len(primary.calls) == 1

    # Each rescued call records two failures; 10 samples reach min_samples.
    for _ in range(4):
        ex.execute("x")
    assert ex.sensor.tension() == 1.0
    assert len(primary.calls) == 5

    res = ex.execute("x")
    assert len(primary.calls) == 5
    assert res.path is ExecutionPath.FALLBACK
    assert res.state is BalanceState.DEGRADED
    assert res.rebalance_action == SKIPPED_PRIMARY
    assert any(e.message.startswith("Primary skipped") for e in events.latest())


def test_observing_state_still_uses_primary():
    s = TensionSensor(window_capacity=10, min_samples=10)
    for ok in [False] * 4 + [True] * 6:
        s.record(ok)
    ex = ResilientExecutor(Op(result="ok"), Op(), sensor=s, classifier=BalanceClassifier(0.3, 0.6))
    res = ex.execute()
    assert res.state is BalanceState.OBSERVING
    assert res.tension == pytest.approx(0.4)
    assert res.value == "ok"


def test_both_failed_reports_primary_first():
    boom = ValueError("primary broke")
    ex = ResilientExecutor(Op(exc=boom), Op(exc=KeyError("fallback broke")))
    with pytest.raises(BothFailed) as info:
        ex.execute()
    err = info.value
    assert isinstance(err, PrimaryFailure)
    assert err.cause is boom
    assert err.primary.cause is boom
    assert isinstance(err.fallback, FallbackFailure)
    assert isinstance(err.fallback.cause, KeyError)
    assert "primary broke" in str(err)
    assert len(ex.sensor) == 2


def test_direct_fallback_failure_propagates_fallback_error():
    primary = Op()
    ex = ResilientExecutor(primary, Op(exc=TimeoutError("slow")), sensor=_degraded_sensor())
    with pytest.raises(FallbackFailure) as info:
        ex.execute()
    assert not isinstance(info.value, BothFailed)
    assert isinstance(info.value.cause, TimeoutError)
    assert primary.calls == []
    assert len(ex.sensor) == 11


def test_direct_fallback_success_lets_tension_decay():
    s = _degraded_sensor()
    ex = ResilientExecutor(Op(), Op(result="fb"), sensor=s)
    for _ in range(10):
        ex.execute()
    assert s.tension() == pytest.approx(0.5)
    assert ex.execute().path is ExecutionPath.PRIMARY


def test_declared_failure_result_triggers_fallback():
    primary = Op(result={"ok": False})
    fallback = Op(result={"ok": True})
    ex = ResilientExecutor(primary, fallback, failure_predicate=lambda r: not r["ok"])
    res = ex.execute()
    assert res.value == {"ok": True}
    assert res.rebalance_action == SWITCHED_TO_FALLBACK


def test_declared_failure_on_both_legs_keeps_results():
    ex = ResilientExecutor(Op(result="bad-1"), Op(result="bad-2"), failure_predicate=lambda r: r.startswith("bad"))
    with pytest.raises(BothFailed) as info:
        ex.execute()
    assert info.value.primary.result == "bad-1"
    assert info.value.fallback.result == "bad-2"


def test_structural_signal_forces_fallback():
    primary = Op()
    ex = ResilientExecutor(primary, Op(result="fb"), structural_signal=lambda: 0.9)
    res = ex.execute()
    assert res.tension == 0.0
    assert res.path is ExecutionPath.FALLBACK
    assert primary.calls == []


def test_sensor_records_at_most_twice_per_call():
    ex = ResilientExecutor(Op(exc=RuntimeError()), Op())
    for n in range(1, 6):
        ex.execute()
        assert len(ex.sensor) == 2 * n


def test_empty_sensor_and_classifier_are_kept():
    s = TensionSensor(window_capacity=10, min_samples=2)
    c = BalanceClassifier(0.2, 0.5)
    ex = ResilientExecutor(Op(), Op(), sensor=s, classifier=c)
    assert ex.sensor is s
    assert ex.classifier is c
    ex.execute()
    assert len(s) == 1

"""Tests for the native-parity adapter and formula strategies."""

from craft_advisor.engine.native import (
    LOCAL_FALLBACK,
    Capability,
    CapabilityStatus,
    LocalFormula,
    NativeFormula,
    NativeParityAdapter,
)
from craft_advisor.models.effect import Scaling, flat


class _Host:
    def __init__(self, scaling_result=None, fail=False):
        self.calls = 0
        self._result = scaling_result
        self._fail = fail

    def evaluate_scaling(self, scaling, variables):
        self.calls += 1
        if self._fail:
            raise RuntimeError("native crashed")
        return self._result

    def completion_cap(self):
        return "120"

    def perfection_cap(self):
        return "lots"

    toxicity_cap = 7   # not callable


def test_probe_is_cached_per_capability():
    adapter = NativeParityAdapter(_Host())
    assert adapter.probe(Capability.EVALUATE_SCALING) is CapabilityStatus.AVAILABLE
    assert adapter.probe(Capability.CAN_USE_ACTION) is CapabilityStatus.UNAVAILABLE
    assert adapter.probe(Capability.TOXICITY_CAP) is CapabilityStatus.UNAVAILABLE
    adapter.host = None
    assert adapter.is_available(Capability.EVALUATE_SCALING)


def test_no_host_means_local_everything():
    adapter = NativeParityAdapter()
    assert adapter.invoke(Capability.COMPLETION_CAP) is LOCAL_FALLBACK
    assert not LOCAL_FALLBACK
    assert isinstance(adapter.formula_strategy(), LocalFormula)
    assert adapter.native_number(Capability.COMPLETION_CAP) is None


def test_native_number_parses_and_rejects():
    adapter = NativeParityAdapter(_Host())
    assert adapter.native_number(Capability.COMPLETION_CAP) == 120.0
    assert adapter.native_number(Capability.PERFECTION_CAP) is None


def test_native_formula_matching_result_records_no_drift():
    host = _Host(scaling_result=13.0)
    adapter = NativeParityAdapter(host)
    strategy = adapter.formula_strategy()
    assert isinstance(strategy, NativeFormula)
    assert adapter.formula_strategy() is strategy

    scaling = Scaling(base_value=1, stat_reference="control", stat_multiplier=2)
    assert strategy.evaluate(scaling, {"control": 6.0}) == 13.0
    assert adapter.drift == []
    assert host.calls == 1


def test_native_formula_result_wins_and_disagreement_is_drift():
    adapter = NativeParityAdapter(_Host(scaling_result=99.0))
    value = adapter.formula_strategy().evaluate(flat(5), {})
    assert value == 99.0
    assert len(adapter.drift) == 1
    drift = adapter.drift[0]
    assert drift.capability is Capability.EVALUATE_SCALING
    assert (drift.native, drift.local) == (99.0, 5.0)


def test_native_formula_non_numeric_result_is_drift():
    adapter = NativeParityAdapter(_Host(scaling_result="nope"))
    assert adapter.formula_strategy().evaluate(flat(5), {}) == 5.0
    assert adapter.drift[0].native == "nope"


def test_native_formula_non_finite_result_uses_local():
    adapter = NativeParityAdapter(_Host(scaling_result=float("inf")))
    assert adapter.formula_strategy().evaluate(flat(5), {}) == 5.0
    assert len(adapter.drift) == 1


def test_native_failure_falls_back_silently(caplog):
    host = _Host(fail=True)
    adapter = NativeParityAdapter(host)
    with caplog.at_level("WARNING"):
        assert adapter.formula_strategy().evaluate(flat(5), {}) == 5.0
    assert adapter.drift == []
    assert "native crashed" in caplog.text


def test_none_scaling_skips_native_call():
    host = _Host(scaling_result=3.0)
    adapter = NativeParityAdapter(host)
    assert adapter.formula_strategy().evaluate(None, {}) == 0.0
    assert host.calls == 0


def test_reset_drift_returns_and_clears():
    adapter = NativeParityAdapter(_Host(scaling_result=1.0))
    adapter.formula_strategy().evaluate(flat(2), {})
    drift = adapter.reset_drift()
    assert len(drift) == 1
    assert adapter.drift == []

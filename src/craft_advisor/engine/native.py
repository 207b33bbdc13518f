"""Native-parity adapter: optional delegation to host-provided functions.

The host may expose authoritative implementations of some calculations
(formula evaluation, action availability, progress caps). Each one is a
capability probed once per session and cached. A usable native result is
the one the engine acts on; when it disagrees with the local model the
pair is recorded as parity drift for the caller to surface. A missing or
failing capability, or a result that is not a usable value, falls back
to the local model.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from craft_advisor.engine import formula
from craft_advisor.models.effect import Scaling
from craft_advisor.models.errors import NativeCapabilityUnavailable

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Host attribute names for each native capability."""
    EVALUATE_SCALING = "evaluate_scaling"   # (scaling, variables) -> float
    CAN_USE_ACTION = "can_use_action"       # (technique, state) -> bool
    COMPLETION_CAP = "completion_cap"       # () -> number
    PERFECTION_CAP = "perfection_cap"       # () -> number
    TOXICITY_CAP = "toxicity_cap"           # () -> number


class CapabilityStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class _LocalFallback:
    """Sentinel returned by `invoke` when the caller must use its local model."""

    _instance: _LocalFallback | None = None

    def __new__(cls) -> _LocalFallback:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "LOCAL_FALLBACK"

    def __bool__(self) -> bool:
        return False


LOCAL_FALLBACK = _LocalFallback()


@dataclass(slots=True)
class ParityDrift:
    """A native result that disagreed with the local model for the same input."""

    capability: Capability
    detail: str
    native: Any
    local: Any


class FormulaStrategy(Protocol):
    def evaluate(self, scaling: Scaling | None, variables: formula.Variables) -> float:
        ...


class LocalFormula:
    """Formula strategy backed by the local evaluator only."""

    def evaluate(self, scaling: Scaling | None, variables: formula.Variables) -> float:
        return formula.evaluate(scaling, variables)


class NativeFormula:
    """Formula strategy that delegates to the host and audits it locally.

    A finite native result is returned as is. Anything else (absent
    capability, host error, non-numeric or non-finite result) yields the
    local value.
    """

    def __init__(self, adapter: NativeParityAdapter, tolerance: float = 1e-6) -> None:
        self._adapter = adapter
        self._local = LocalFormula()
        self._tolerance = tolerance

    def evaluate(self, scaling: Scaling | None, variables: formula.Variables) -> float:
        local = self._local.evaluate(scaling, variables)
        if scaling is None:
            return local
        native = self._adapter.invoke(Capability.EVALUATE_SCALING, scaling, variables)
        if native is LOCAL_FALLBACK:
            return local
        try:
            native_value = float(native)
        except (TypeError, ValueError):
            native_value = math.nan
        if not math.isfinite(native_value):
            self._adapter.report_drift(
                Capability.EVALUATE_SCALING, repr(scaling), native, local
            )
            return local
        if not math.isclose(native_value, local, rel_tol=self._tolerance, abs_tol=self._tolerance):
            self._adapter.report_drift(
                Capability.EVALUATE_SCALING, repr(scaling), native_value, local
            )
        return native_value


@dataclass(slots=True)
class NativeParityAdapter:
    """Probes and invokes host capabilities with local fallback.

    `host` is any object; a capability is available when the attribute
    named after it exists and is callable.
    """

    host: Any = None
    drift: list[ParityDrift] = field(default_factory=list)
    _probed: dict[Capability, CapabilityStatus] = field(default_factory=dict)
    _formula: FormulaStrategy | None = None

    def probe(self, capability: Capability) -> CapabilityStatus:
        status = self._probed.get(capability)
        if status is None:
            fn = getattr(self.host, capability.value, None) if self.host is not None else None
            status = CapabilityStatus.AVAILABLE if callable(fn) else CapabilityStatus.UNAVAILABLE
            self._probed[capability] = status
            logger.debug("Native capability %s: %s", capability.value, status.value)
        return status

    def is_available(self, capability: Capability) -> bool:
        return self.probe(capability) is CapabilityStatus.AVAILABLE

    def invoke(self, capability: Capability, *args: Any) -> Any:
        """Call the host function, or return LOCAL_FALLBACK on absence or error."""
        try:
            return self._call(capability, *args)
        except NativeCapabilityUnavailable as exc:
            logger.debug("%s; using local model", exc)
            return LOCAL_FALLBACK

    def _call(self, capability: Capability, *args: Any) -> Any:
        if not self.is_available(capability):
            raise NativeCapabilityUnavailable(capability.value)
        fn = getattr(self.host, capability.value)
        try:
            return fn(*args)
        except Exception as exc:  # any host failure falls back
            logger.warning("Native capability %s failed: %s", capability.value, exc)
            raise NativeCapabilityUnavailable(capability.value, f"raised {exc!r}") from exc

    def report_drift(self, capability: Capability, detail: str, native: Any, local: Any) -> None:
        logger.warning(
            "Parity drift in %s for %s: native=%r local=%r",
            capability.value,
            detail,
            native,
            local,
        )
        self.drift.append(ParityDrift(capability, detail, native, local))

    def formula_strategy(self) -> FormulaStrategy:
        """Pick the formula strategy once per session."""
        if self._formula is None:
            if self.is_available(Capability.EVALUATE_SCALING):
                self._formula = NativeFormula(self)
            else:
                self._formula = LocalFormula()
        return self._formula

    def native_number(self, capability: Capability) -> float | None:
        """Numeric getter capability, or None when the local model applies."""
        value = self.invoke(capability)
        if value is LOCAL_FALLBACK or value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Native capability %s returned non-numeric %r", capability.value, value)
            return None

    def reset_drift(self) -> list[ParityDrift]:
        """Return and clear recorded drift."""
        drift, self.drift = self.drift, []
        return drift

"""Apply atomic effects to craft states.

Each effect class maps to one field update on a new CraftState. Effects
are dispatched on their concrete class; anything outside the known set
raises UnsupportedEffect so parity gaps surface instead of being skipped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from craft_advisor.engine.formula import Variables, expected_crit_multiplier
from craft_advisor.engine.native import FormulaStrategy, LocalFormula
from craft_advisor.models.catalog import Catalog
from craft_advisor.models.effect import (
    EFFECT_KIND_NAMES,
    AddStackEffect,
    ChangeToxicityEffect,
    CleanseToxicityEffect,
    CompletionEffect,
    ConsumeBuffEffect,
    CreateBuffEffect,
    Effect,
    MaxStabilityEffect,
    NegateEffect,
    PerfectionEffect,
    PoolEffect,
    StabilityEffect,
)
from craft_advisor.models.errors import UnsupportedEffect
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import CraftState


@dataclass(slots=True)
class BatchResult:
    """Outcome of one trigger batch."""

    state: CraftState
    applied: int = 0
    negated: int = 0                    # effects suppressed by a negate
    created_buffs: set[str] = field(default_factory=set)


class EffectResolver:
    """Resolves effects against states using a shared catalog and recipe.

    Progress caps are passed in by the caller (the transition engine owns
    the native/local cap decision).
    """

    def __init__(
        self,
        catalog: Catalog,
        recipe: Recipe,
        formula: FormulaStrategy | None = None,
        *,
        completion_cap: float = math.inf,
        perfection_cap: float = math.inf,
    ) -> None:
        self._catalog = catalog
        self._recipe = recipe
        self._formula = formula or LocalFormula()
        self.completion_cap = completion_cap
        self.perfection_cap = perfection_cap

    def amount(self, effect: Effect, variables: Variables, multiplier: float = 1.0) -> float:
        return self._formula.evaluate(effect.amount, variables) * multiplier

    def apply(
        self,
        effect: Effect,
        state: CraftState,
        variables: Variables,
        *,
        owner: str | None = None,
        multiplier: float = 1.0,
    ) -> CraftState:
        """Return the state after applying one effect."""
        if isinstance(effect, CompletionEffect):
            gain = self._progress_gain(self.amount(effect, variables, multiplier), variables)
            completion, overflow = _add_capped(state.completion, gain, self.completion_cap)
            return state.evolve(
                completion=completion,
                completion_overflow=state.completion_overflow + overflow,
            )
        if isinstance(effect, PerfectionEffect):
            gain = self._progress_gain(self.amount(effect, variables, multiplier), variables)
            perfection, overflow = _add_capped(state.perfection, gain, self.perfection_cap)
            return state.evolve(
                perfection=perfection,
                perfection_overflow=state.perfection_overflow + overflow,
            )
        if isinstance(effect, StabilityEffect):
            delta = math.floor(self.amount(effect, variables, multiplier))
            stability = min(state.max_stability, max(0, state.stability + delta))
            return state.evolve(stability=stability)
        if isinstance(effect, MaxStabilityEffect):
            delta = math.floor(self.amount(effect, variables, multiplier))
            max_stability = max(0, state.max_stability + delta)
            return state.evolve(
                max_stability=max_stability,
                stability=min(state.stability, max_stability),
            )
        if isinstance(effect, PoolEffect):
            pool = max(0, state.pool + math.floor(self.amount(effect, variables, multiplier)))
            if state.max_pool > 0:
                pool = min(pool, state.max_pool)
            return state.evolve(pool=pool)
        if isinstance(effect, CreateBuffEffect):
            stacks = math.floor(self.amount(effect, variables, multiplier)) or 1
            return self._grant_stacks(state, effect.buff_id, stacks, create=True)
        if isinstance(effect, ConsumeBuffEffect):
            stacks = math.floor(self.amount(effect, variables, multiplier))
            return _remove_stacks(state, effect.buff_id, stacks)
        if isinstance(effect, AddStackEffect):
            buff_id = effect.buff_id or owner
            if buff_id is None or buff_id not in state.active_buffs:
                return state
            stacks = math.floor(self.amount(effect, variables, multiplier))
            return self._grant_stacks(state, buff_id, stacks, create=False)
        if isinstance(effect, CleanseToxicityEffect):
            cleanse = math.floor(self.amount(effect, variables, multiplier))
            return state.evolve(toxicity=max(0, state.toxicity - max(0, cleanse)))
        if isinstance(effect, ChangeToxicityEffect):
            delta = math.floor(self.amount(effect, variables, multiplier))
            return state.evolve(toxicity=max(0, state.toxicity + delta))
        if isinstance(effect, NegateEffect):
            return state
        raise UnsupportedEffect(_kind_name(effect))

    def apply_batch(
        self,
        effects: tuple[Effect, ...] | list[Effect],
        state: CraftState,
        variables: Variables,
        *,
        owner: str | None = None,
        multiplier: float = 1.0,
    ) -> BatchResult:
        """Apply one trigger batch in order.

        Effects whose `when` condition does not match are skipped. The first
        active negate is located before anything is applied; every effect
        after it is suppressed, the ones before it still apply.
        """
        active = [e for e in effects if _triggers(e, state)]
        cut = len(active)
        for i, effect in enumerate(active):
            if isinstance(effect, NegateEffect):
                cut = i
                break

        result = BatchResult(state=state, negated=max(0, len(active) - cut - 1))
        for effect in active[:cut]:
            if isinstance(effect, CreateBuffEffect):
                result.created_buffs.add(effect.buff_id)
            result.state = self.apply(
                effect, result.state, variables, owner=owner, multiplier=multiplier
            )
            result.applied += 1
        return result

    def _progress_gain(self, amount: float, variables: Variables) -> int:
        if amount <= 0:
            return math.floor(amount)
        crit = expected_crit_multiplier(
            variables.get("critchance", 0.0),
            variables.get("critmultiplier", 150.0),
        )
        return math.floor(amount * crit)

    def _grant_stacks(self, state: CraftState, buff_id: str, stacks: int, *, create: bool) -> CraftState:
        buff = self._catalog.buff(buff_id)
        current = state.stacks(buff_id)
        if create and buff is not None and not buff.stackable:
            total = stacks
        else:
            total = current + stacks
        if buff is not None:
            total = buff.clamp_stacks(total)
        buffs = dict(state.active_buffs)
        if total > 0:
            buffs[buff_id] = total
        else:
            buffs.pop(buff_id, None)
        return state.evolve(active_buffs=buffs)


def _triggers(effect: Effect, state: CraftState) -> bool:
    when = getattr(effect, "when", None)
    return when is None or when == state.condition


def _add_capped(current: int, gain: int, cap: float) -> tuple[int, int]:
    """Add `gain` to `current`, clamping at `cap`; returns (value, overflow).

    The result never exceeds the cap, even when `current` already did.
    """
    total = max(0, current + gain)
    if total > cap:
        capped = int(cap)
        return capped, total - capped
    return total, 0


def _remove_stacks(state: CraftState, buff_id: str, stacks: int) -> CraftState:
    if buff_id not in state.active_buffs:
        return state
    remaining = max(0, state.stacks(buff_id) - max(0, stacks))
    buffs = dict(state.active_buffs)
    if remaining > 0:
        buffs[buff_id] = remaining
    else:
        del buffs[buff_id]
    return state.evolve(active_buffs=buffs)


def _kind_name(effect: object) -> str:
    name = EFFECT_KIND_NAMES.get(type(effect))
    if name is not None:
        return name
    return str(getattr(effect, "kind", type(effect).__name__))

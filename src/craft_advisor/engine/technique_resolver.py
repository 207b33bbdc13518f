"""Technique legality, finalized costs and effect batches.

Cost modifiers stack in a fixed order that matches the host:
base cost → condition multiplier → buff percentage → mastery tier.
Reordering these changes rounding and breaks numeric parity.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from craft_advisor.engine.formula import Variables, build_variables
from craft_advisor.engine.native import (
    LOCAL_FALLBACK,
    Capability,
    NativeParityAdapter,
)
from craft_advisor.models.buff import BuffTrigger
from craft_advisor.models.catalog import Catalog
from craft_advisor.models.effect import Effect
from craft_advisor.models.errors import ActionUnavailable, UnavailableReason
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import CraftState
from craft_advisor.models.technique import Technique


@dataclass(frozen=True, slots=True)
class FinalizedCost:
    """Costs after every modifier, as the host would deduct them."""

    pool: int = 0
    stability: int = 0
    toxicity: int = 0
    buff_id: str | None = None
    buff_stacks: int = 0


@dataclass(frozen=True, slots=True)
class BuffBatch:
    """Trigger-matched effects of one active buff."""

    buff_id: str
    effects: tuple[Effect, ...]


@dataclass(frozen=True, slots=True)
class ResolvedTechnique:
    technique: Technique
    cost: FinalizedCost
    success_chance: float
    technique_effects: tuple[Effect, ...]
    buff_batches: tuple[BuffBatch, ...] = ()
    effect_multiplier: float = 1.0

    @property
    def effect_batch(self) -> tuple[Effect, ...]:
        """Every effect in resolution order: technique first, then buffs."""
        effects = list(self.technique_effects)
        for batch in self.buff_batches:
            effects.extend(batch.effects)
        return tuple(effects)


class TechniqueResolver:
    """Decides which techniques are usable and what they would do."""

    def __init__(
        self,
        catalog: Catalog,
        recipe: Recipe,
        adapter: NativeParityAdapter | None = None,
    ) -> None:
        self._catalog = catalog
        self._recipe = recipe
        self._adapter = adapter
        self._toxicity_cap = self._resolve_toxicity_cap()

    def _resolve_toxicity_cap(self) -> float | None:
        if self._adapter is not None:
            native = self._adapter.native_number(Capability.TOXICITY_CAP)
            if native is not None and native > 0:
                return native
        if self._recipe.max_toxicity:
            return float(self._recipe.max_toxicity)
        return None

    @property
    def toxicity_cap(self) -> float | None:
        return self._toxicity_cap

    def variables(self, state: CraftState) -> Variables:
        return build_variables(state, self._catalog, self._recipe)

    # --- Costs -------------------------------------------------------------

    def finalized_cost(
        self,
        technique: Technique,
        state: CraftState,
        variables: Variables | None = None,
    ) -> FinalizedCost:
        if variables is None:
            variables = self.variables(state)
        pool = technique.pool_cost
        stability = technique.stability_cost

        for effect in self._recipe.effects_for(state.condition):
            if effect.multiplier is None:
                continue
            if effect.kind == "pool":
                pool = math.floor(pool * effect.multiplier)
            elif effect.kind == "stability":
                stability = math.floor(stability * effect.multiplier)

        pool_pct = variables.get("poolCostPercentage", 100.0)
        if pool_pct != 100.0:
            pool = math.floor(pool * pool_pct / 100.0)
        stability_pct = variables.get("stabilityCostPercentage", 100.0)
        if stability_pct != 100.0:
            stability = math.ceil(stability * stability_pct / 100.0)

        mastery = technique.active_mastery
        if mastery is not None:
            pool += mastery.pool_cost_change
            stability += mastery.stability_cost_change

        buff_id = technique.buff_cost.buff_id if technique.buff_cost else None
        buff_stacks = technique.buff_cost.amount if technique.buff_cost else 0
        return FinalizedCost(
            pool=max(0, int(pool)),
            stability=max(0, int(stability)),
            toxicity=max(0, int(technique.toxicity_cost)),
            buff_id=buff_id,
            buff_stacks=max(0, int(buff_stacks)),
        )

    def success_chance(
        self,
        technique: Technique,
        state: CraftState,
        variables: Variables | None = None,
    ) -> float:
        if variables is None:
            variables = self.variables(state)
        chance = technique.success_chance
        mastery = technique.active_mastery
        if mastery is not None:
            chance += mastery.success_chance_change
        chance += variables.get("successChanceBonus", 0.0)
        for effect in self._recipe.effects_for(state.condition):
            if effect.kind == "chance" and effect.bonus is not None:
                chance += effect.bonus
        return min(1.0, max(0.0, chance))

    # --- Legality ----------------------------------------------------------

    def check(self, technique: Technique, state: CraftState) -> FinalizedCost:
        """Return the finalized cost, or raise ActionUnavailable.

        The local rules run first. A technique they allow is still blocked
        when the host's `can_use_action` rejects it; every disagreement
        with the host is recorded as parity drift.
        """
        try:
            cost = self._check_local(technique, state)
        except ActionUnavailable as exc:
            if exc.reason is not UnavailableReason.TERMINAL:
                self._native_verdict(technique, state, local=False)
            raise
        if self._native_verdict(technique, state, local=True) is False:
            raise ActionUnavailable(
                technique.technique_id, UnavailableReason.NATIVE, "Rejected by the host"
            )
        return cost

    def _check_local(self, technique: Technique, state: CraftState) -> FinalizedCost:
        tid = technique.technique_id
        status = self._recipe.classify(state)
        if status.is_terminal:
            raise ActionUnavailable(tid, UnavailableReason.TERMINAL, f"Craft is {status.value}")

        remaining = state.cooldown(tid)
        if remaining > 0:
            plural = "s" if remaining > 1 else ""
            raise ActionUnavailable(
                tid, UnavailableReason.COOLDOWN, f"On cooldown ({remaining} turn{plural} left)"
            )

        required = technique.condition_requirement
        if required is not None and required != state.condition:
            raise ActionUnavailable(
                tid,
                UnavailableReason.CONDITION,
                f"Requires {required.value} condition (current: {state.condition.value})",
            )

        req = technique.buff_requirement
        if req is not None and state.stacks(req.buff_id) < req.amount:
            raise ActionUnavailable(
                tid,
                UnavailableReason.BUFF_REQUIREMENT,
                f"Needs {req.amount} {req.buff_id} stacks (have {state.stacks(req.buff_id)})",
            )

        cost = self.finalized_cost(technique, state)
        if cost.buff_id is not None and state.stacks(cost.buff_id) < cost.buff_stacks:
            raise ActionUnavailable(
                tid,
                UnavailableReason.BUFF_COST,
                f"Consumes {cost.buff_stacks} {cost.buff_id} stacks "
                f"(have {state.stacks(cost.buff_id)})",
            )
        if state.pool < cost.pool:
            raise ActionUnavailable(
                tid, UnavailableReason.POOL, f"Need {cost.pool} pool (have {state.pool})"
            )
        if state.stability < cost.stability:
            raise ActionUnavailable(
                tid,
                UnavailableReason.STABILITY,
                f"Need {cost.stability} stability (have {state.stability})",
            )
        cap = self._toxicity_cap
        if cap is not None and cost.toxicity > 0 and state.toxicity + cost.toxicity > cap:
            raise ActionUnavailable(
                tid,
                UnavailableReason.TOXICITY,
                f"Would exceed max toxicity ({state.toxicity} + {cost.toxicity} > {cap:g})",
            )
        return cost

    def _native_verdict(self, technique: Technique, state: CraftState, local: bool) -> bool | None:
        """Host availability answer, or None when the host has none."""
        if self._adapter is None or not self._adapter.is_available(Capability.CAN_USE_ACTION):
            return None
        native = self._adapter.invoke(Capability.CAN_USE_ACTION, technique, state)
        if native is LOCAL_FALLBACK:
            return None
        native = bool(native)
        if native != local:
            self._adapter.report_drift(
                Capability.CAN_USE_ACTION, technique.technique_id, native, local
            )
        return native

    def is_legal(self, technique: Technique, state: CraftState) -> bool:
        try:
            self.check(technique, state)
        except ActionUnavailable:
            return False
        return True

    def partition(self, state: CraftState) -> tuple[list[Technique], list[ActionUnavailable]]:
        """Split the catalog into usable techniques and the reasons the rest are not."""
        legal: list[Technique] = []
        blocked: list[ActionUnavailable] = []
        for technique in self._catalog.techniques:
            try:
                self.check(technique, state)
            except ActionUnavailable as exc:
                blocked.append(exc)
            else:
                legal.append(technique)
        return legal, blocked

    def legal_actions(self, state: CraftState) -> list[Technique]:
        """Usable techniques in catalog declaration order."""
        return self.partition(state)[0]

    def blocked_reasons(self, state: CraftState) -> list[ActionUnavailable]:
        return self.partition(state)[1]

    # --- Resolution --------------------------------------------------------

    def resolve(self, technique: Technique, state: CraftState) -> ResolvedTechnique:
        """Finalize costs, success chance and the ordered effect batches."""
        cost = self.check(technique, state)
        variables = self.variables(state)
        trigger = technique.type.buff_trigger
        batches: list[BuffBatch] = []
        for buff_id in state.active_buffs:
            buff = self._catalog.buff(buff_id)
            if buff is None:
                continue
            effects = buff.effects_for(BuffTrigger.ALWAYS) + buff.effects_for(trigger)
            if effects:
                batches.append(BuffBatch(buff_id, effects))
        mastery = technique.active_mastery
        return ResolvedTechnique(
            technique=technique,
            cost=cost,
            success_chance=self.success_chance(technique, state, variables),
            technique_effects=tuple(technique.effects),
            buff_batches=tuple(batches),
            effect_multiplier=mastery.effect_multiplier if mastery is not None else 1.0,
        )

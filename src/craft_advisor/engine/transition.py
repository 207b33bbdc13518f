"""State transition engine: one technique use → success and failure states.

A step pays the finalized costs, applies the max-stability loss of using
a technique, resolves the technique's effect batch and each active buff's
trigger batch, then advances the turn (buff self-consumption, cooldowns,
condition drift). Both outcome branches are produced from the same
starting state; on failure only the technique's own completion and
perfection effects are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass

from craft_advisor.engine.condition_drift import (
    ConditionDriftPolicy,
    ConditionTransition,
    StaticDriftPolicy,
)
from craft_advisor.engine.effect_resolver import EffectResolver
from craft_advisor.engine.formula import build_variables
from craft_advisor.engine.native import Capability, LocalFormula, NativeParityAdapter
from craft_advisor.engine.technique_resolver import ResolvedTechnique, TechniqueResolver
from craft_advisor.models.catalog import Catalog
from craft_advisor.models.effect import PROGRESS_EFFECT_TYPES
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import CraftState, CraftStatus
from craft_advisor.models.technique import Technique


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Both branches of a technique roll.

    `failure` is None when the technique cannot fail, `success` is None
    when it cannot succeed.
    """

    success: CraftState | None
    failure: CraftState | None
    success_chance: float
    resolved: ResolvedTechnique

    def branches(self) -> list[tuple[float, CraftState, bool]]:
        """(probability, state, succeeded) for every reachable branch."""
        result = []
        if self.success is not None:
            result.append((self.success_chance, self.success, True))
        if self.failure is not None:
            result.append((1.0 - self.success_chance, self.failure, False))
        return result


class TransitionEngine:
    def __init__(
        self,
        catalog: Catalog,
        recipe: Recipe,
        drift_policy: ConditionDriftPolicy | None = None,
        adapter: NativeParityAdapter | None = None,
    ) -> None:
        self.catalog = catalog
        self.recipe = recipe
        self.drift_policy = drift_policy or StaticDriftPolicy()
        self.adapter = adapter
        self.formula = adapter.formula_strategy() if adapter is not None else LocalFormula()
        self.resolver = TechniqueResolver(catalog, recipe, adapter)
        self.completion_cap = self._cap(Capability.COMPLETION_CAP, recipe.local_completion_cap())
        self.perfection_cap = self._cap(Capability.PERFECTION_CAP, recipe.local_perfection_cap())
        self.effects = EffectResolver(
            catalog,
            recipe,
            self.formula,
            completion_cap=self.completion_cap,
            perfection_cap=self.perfection_cap,
        )

    def _cap(self, capability: Capability, local: float) -> float:
        if self.adapter is None:
            return local
        native = self.adapter.native_number(capability)
        if native is None or native <= 0:
            return local
        return native

    # --- Queries -----------------------------------------------------------

    def classify(self, state: CraftState) -> CraftStatus:
        return self.recipe.classify(state)

    def legal_actions(self, state: CraftState) -> list[Technique]:
        if self.classify(state).is_terminal:
            return []
        return self.resolver.legal_actions(state)

    def transitions(self, state: CraftState) -> list[ConditionTransition]:
        transitions = self.drift_policy.transitions(state.condition, state.condition_queue)
        if not transitions:
            return [ConditionTransition(state.condition, state.condition_queue, 1.0)]
        return list(transitions)

    def most_likely(self, state: CraftState) -> ConditionTransition:
        """Highest-probability transition; the first one listed wins ties."""
        best: ConditionTransition | None = None
        for transition in self.transitions(state):
            if best is None or transition.probability > best.probability:
                best = transition
        return best

    def with_visible_forecast(self, state: CraftState) -> CraftState:
        """Pad the forecast to what the host shows, when the policy models one."""
        visible_queue = getattr(self.drift_policy, "visible_queue", None)
        if visible_queue is None:
            return state
        queue = tuple(visible_queue(state.condition, state.condition_queue))
        if queue == state.condition_queue:
            return state
        return state.evolve(condition_queue=queue)

    # --- Transitions -------------------------------------------------------

    def step(
        self,
        state: CraftState,
        technique: Technique,
        transition: ConditionTransition | None = None,
    ) -> StepOutcome:
        """Apply `technique` to `state`.

        Raises ActionUnavailable when the technique cannot be used,
        including on terminal states.
        """
        resolved = self.resolver.resolve(technique, state)
        if transition is None:
            transition = self.most_likely(state)
        chance = resolved.success_chance
        success = self._branch(state, resolved, transition, succeeded=True) if chance > 0 else None
        failure = self._branch(state, resolved, transition, succeeded=False) if chance < 1 else None
        return StepOutcome(success, failure, chance, resolved)

    def _branch(
        self,
        state: CraftState,
        resolved: ResolvedTechnique,
        transition: ConditionTransition,
        *,
        succeeded: bool,
    ) -> CraftState:
        technique = resolved.technique
        current = self._pay(state, resolved)

        variables = build_variables(state, self.catalog, self.recipe)
        effects = resolved.technique_effects
        if not succeeded:
            effects = tuple(e for e in effects if not isinstance(e, PROGRESS_EFFECT_TYPES))
        result = self.effects.apply_batch(
            effects, current, variables, multiplier=resolved.effect_multiplier
        )
        current = result.state
        created = set(result.created_buffs)

        for batch in resolved.buff_batches:
            buff_vars = build_variables(
                state, self.catalog, self.recipe, stacks=state.stacks(batch.buff_id)
            )
            result = self.effects.apply_batch(
                batch.effects, current, buff_vars, owner=batch.buff_id
            )
            current = result.state
            created |= result.created_buffs

        return self._advance(current, state, technique, transition, created)

    def _pay(self, state: CraftState, resolved: ResolvedTechnique) -> CraftState:
        cost = resolved.cost
        buffs = dict(state.active_buffs)
        if cost.buff_id is not None and cost.buff_stacks > 0 and cost.buff_id in buffs:
            remaining = buffs[cost.buff_id] - cost.buff_stacks
            if remaining > 0:
                buffs[cost.buff_id] = remaining
            else:
                del buffs[cost.buff_id]

        max_stability = state.max_stability
        loss = self.recipe.max_stability_loss_per_use
        if loss > 0 and not resolved.technique.no_max_stability_loss:
            max_stability = max(0, max_stability - loss)

        stability = min(max(0, state.stability - cost.stability), max_stability)
        return state.evolve(
            pool=max(0, state.pool - cost.pool),
            stability=stability,
            max_stability=max_stability,
            toxicity=state.toxicity + cost.toxicity,
            active_buffs=buffs,
        )

    def _advance(
        self,
        current: CraftState,
        before: CraftState,
        technique: Technique,
        transition: ConditionTransition,
        created: set[str],
    ) -> CraftState:
        buffs = dict(current.active_buffs)
        for buff_id in before.active_buffs:
            buff = self.catalog.buff(buff_id)
            if buff is None or not buff.self_consuming:
                continue
            if buff_id in created or buff_id not in buffs:
                continue
            if buffs[buff_id] > 1:
                buffs[buff_id] -= 1
            else:
                del buffs[buff_id]

        cooldowns = {tid: turns - 1 for tid, turns in current.cooldowns.items() if turns > 1}
        if technique.cooldown > 0:
            cooldowns[technique.technique_id] = technique.cooldown

        return current.evolve(
            active_buffs=buffs,
            cooldowns=cooldowns,
            condition=transition.next_condition,
            condition_queue=tuple(transition.next_queue),
            turn=current.turn + 1,
            history=current.history + (technique.technique_id,),
        )


def expected_value(outcome: StepOutcome, attr: str) -> float:
    """Probability-weighted value of a numeric state field across branches."""
    total = 0.0
    for probability, state, _ in outcome.branches():
        total += probability * getattr(state, attr)
    return total

"""Expected-value lookahead search over technique sequences.

Every node enumerates the legal techniques; each technique branches into
its success and failure outcomes weighted by success chance (and, when
enabled, across condition drift outcomes). A node is worth the best
expected value among its actions. Leaves are scored with ScoringWeights.

Below the root, techniques are ordered by their one-step score and only
the first `beam_width` are expanded. A `max_nodes` budget turns the
search into iterative deepening: each depth either finishes or is
discarded, so a ranking always comes from one complete pass.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from craft_advisor.engine.condition_drift import ConditionDriftPolicy, ConditionTransition
from craft_advisor.engine.native import NativeParityAdapter, ParityDrift
from craft_advisor.engine.technique_resolver import FinalizedCost
from craft_advisor.engine.transition import StepOutcome, TransitionEngine, expected_value
from craft_advisor.models.catalog import Catalog
from craft_advisor.models.errors import ActionUnavailable, AdvisorError
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import CraftState, CraftStatus
from craft_advisor.models.technique import Technique
from craft_advisor.optimizer.specs import AdvisorConfig, ScoringWeights

logger = logging.getLogger(__name__)

_SCORE_PRECISION = 9


@dataclass(slots=True)
class ActionPlan:
    """One recommended first action with its expected outcome.

    `score` is the expected value of the line. Ranking also charges
    `weights.overflow * expected_overflow` against it.
    """

    technique_id: str
    name: str
    type: str
    rotation: list[str] = field(default_factory=list)
    expected_completion_gain: float = 0.0
    expected_perfection_gain: float = 0.0
    expected_stability_change: float = 0.0
    expected_overflow: float = 0.0
    cost: FinalizedCost = field(default_factory=FinalizedCost)
    success_chance: float = 1.0
    score: float = 0.0
    success_state: CraftState | None = None
    failure_state: CraftState | None = None
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "technique_id": self.technique_id,
            "name": self.name,
            "type": self.type,
            "rotation": list(self.rotation),
            "expected_completion_gain": self.expected_completion_gain,
            "expected_perfection_gain": self.expected_perfection_gain,
            "expected_stability_change": self.expected_stability_change,
            "expected_overflow": self.expected_overflow,
            "cost": {
                "pool": self.cost.pool,
                "stability": self.cost.stability,
                "toxicity": self.cost.toxicity,
                "buff_id": self.cost.buff_id,
                "buff_stacks": self.cost.buff_stacks,
            },
            "success_chance": self.success_chance,
            "score": self.score,
            "reasoning": self.reasoning,
        }


@dataclass(slots=True)
class SearchMetrics:
    nodes_explored: int = 0
    cache_hits: int = 0
    elapsed_ms: float = 0.0
    depth: int = 0
    beam_pruned: int = 0
    budget_exhausted: bool = False


@dataclass(slots=True)
class Recommendation:
    """Search output. On failure `best` is None and `error_kind` is set."""

    success: bool
    status: CraftStatus | None = None
    best: ActionPlan | None = None
    alternatives: list[ActionPlan] = field(default_factory=list)
    blocked_reasons: list[ActionUnavailable] = field(default_factory=list)
    metrics: SearchMetrics = field(default_factory=SearchMetrics)
    error_kind: str | None = None
    messages: list[str] = field(default_factory=list)
    parity_drift: list[ParityDrift] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value if self.status is not None else None,
            "best": self.best.to_dict() if self.best is not None else None,
            "alternatives": [plan.to_dict() for plan in self.alternatives],
            "blocked": [
                {
                    "technique_id": exc.technique_id,
                    "reason": exc.reason.value,
                    "details": exc.details,
                }
                for exc in self.blocked_reasons
            ],
            "metrics": {
                "nodes_explored": self.metrics.nodes_explored,
                "cache_hits": self.metrics.cache_hits,
                "elapsed_ms": self.metrics.elapsed_ms,
                "depth": self.metrics.depth,
                "beam_pruned": self.metrics.beam_pruned,
                "budget_exhausted": self.metrics.budget_exhausted,
            },
            "error_kind": self.error_kind,
            "messages": list(self.messages),
            "parity_drift": [
                {
                    "capability": d.capability.value,
                    "detail": d.detail,
                    "native": repr(d.native),
                    "local": repr(d.local),
                }
                for d in self.parity_drift
            ],
        }


def score_state(
    state: CraftState,
    status: CraftStatus,
    weights: ScoringWeights,
    completion_cap: float,
    perfection_cap: float,
) -> float:
    """Leaf value of a state. Overflow is charged at the root, not here."""
    score = weights.completion * min(state.completion, completion_cap)
    score += weights.perfection * min(state.perfection, perfection_cap)
    if status is CraftStatus.FAILED:
        score -= weights.failure
    elif status is CraftStatus.COMPLETED:
        score += weights.target_bonus
    score += weights.stability * state.stability
    score += weights.pool * state.pool
    return score


def expected_waste(state: CraftState, outcome: StepOutcome) -> float:
    """Expected progress `outcome` pushes past the caps."""
    before = state.completion_overflow + state.perfection_overflow
    return sum(
        probability * (child.completion_overflow + child.perfection_overflow - before)
        for probability, child, _ in outcome.branches()
    )


class _NodeBudgetExhausted(Exception):
    pass


@dataclass(slots=True)
class _Ranked:
    key: tuple
    value: float
    waste: float
    outcome: StepOutcome


class _Search:
    """One search invocation: memo table and counters live here."""

    def __init__(self, engine: TransitionEngine, config: AdvisorConfig) -> None:
        self.engine = engine
        self.config = config
        self.memo: dict[tuple, float] = {}
        self.best_moves: dict[tuple, Technique] = {}
        self.metrics = SearchMetrics(depth=config.lookahead_depth)

    def score(self, state: CraftState, status: CraftStatus | None = None) -> float:
        if status is None:
            status = self.engine.classify(state)
        return score_state(
            state,
            status,
            self.config.weights,
            self.engine.completion_cap,
            self.engine.perfection_cap,
        )

    def transitions(self, state: CraftState) -> list[ConditionTransition]:
        if self.config.branch_conditions:
            return self.engine.transitions(state)
        likely = self.engine.most_likely(state)
        return [ConditionTransition(likely.next_condition, likely.next_queue, 1.0)]

    def value(self, state: CraftState, depth: int) -> float:
        """Best expected score reachable from `state` within `depth` moves.

        Raises _NodeBudgetExhausted when expanding would pass `max_nodes`.
        """
        self.metrics.nodes_explored += 1
        status = self.engine.classify(state)
        if depth <= 0 or status.is_terminal:
            return self.score(state, status)

        key = (state.cache_key(), depth)
        if self.config.use_cache and key in self.memo:
            self.metrics.cache_hits += 1
            return self.memo[key]

        limit = self.config.max_nodes
        if limit is not None and self.metrics.nodes_explored > limit:
            raise _NodeBudgetExhausted

        actions = self.engine.legal_actions(state)
        if not actions:
            result = self.score(state, status)
        else:
            best_key = None
            for technique in self.beam(state, actions):
                value, outcome = self.evaluate(state, technique, depth)
                rank = self.rank_key(value, outcome.success_chance, technique)
                if best_key is None or rank < best_key:
                    best_key, result = rank, value
                    self.best_moves[key] = technique
        if self.config.use_cache:
            self.memo[key] = result
        return result

    def beam(self, state: CraftState, actions: list[Technique]) -> list[Technique]:
        """The `beam_width` techniques with the best one-step score."""
        width = self.config.beam_width
        if width is None or len(actions) <= width:
            return actions
        transition = self.transitions(state)[0]
        ordered = []
        for technique in actions:
            outcome = self.engine.step(state, technique, transition)
            estimate = sum(p * self.score(child) for p, child, _ in outcome.branches())
            ordered.append((self.rank_key(estimate, outcome.success_chance, technique), technique))
        ordered.sort(key=lambda entry: entry[0])
        self.metrics.beam_pruned += len(actions) - width
        return [technique for _, technique in ordered[:width]]

    def evaluate(self, state: CraftState, technique: Technique, depth: int) -> tuple[float, StepOutcome]:
        """Expected value of using `technique` with `depth` moves left after it.

        Returns the value and the outcome under the first (most likely)
        condition transition.
        """
        total = 0.0
        first: StepOutcome | None = None
        for transition in self.transitions(state):
            outcome = self.engine.step(state, technique, transition)
            if first is None:
                first = outcome
            for probability, child, _ in outcome.branches():
                total += transition.probability * probability * self.value(child, depth - 1)
        return total, first

    def rank_key(self, score: float, chance: float, technique: Technique) -> tuple:
        return (
            -round(score, _SCORE_PRECISION),
            -chance,
            self.engine.catalog.index_of(technique.technique_id),
        )

    def rank(self, state: CraftState, actions: list[Technique], depth: int) -> list[_Ranked]:
        """Every root action, best first, searched `depth` moves deep."""
        overflow = self.config.weights.overflow
        ranked = []
        for technique in actions:
            value, outcome = self.evaluate(state, technique, depth)
            waste = expected_waste(state, outcome)
            key = self.rank_key(value - overflow * waste, outcome.success_chance, technique)
            ranked.append(_Ranked(key, value, waste, outcome))
        ranked.sort(key=lambda r: r.key)
        return ranked

    def principal_variation(self, outcome: StepOutcome, depth: int) -> list[str]:
        """Follow the more likely branch through the recorded best moves."""
        rotation = [outcome.resolved.technique.technique_id]
        while depth > 0:
            state = _likely_branch(outcome)
            technique = self.best_moves.get((state.cache_key(), depth))
            if technique is None:
                break
            outcome = self.engine.step(state, technique, self.transitions(state)[0])
            rotation.append(technique.technique_id)
            depth -= 1
        return rotation


def _likely_branch(outcome: StepOutcome) -> CraftState:
    if outcome.success is not None and (outcome.success_chance >= 0.5 or outcome.failure is None):
        return outcome.success
    return outcome.failure


class Advisor:
    """Recommends the next technique for a craft.

    One Advisor serves one catalog and recipe; the native adapter's
    capability probes and formula strategy are fixed for its lifetime.
    """

    def __init__(
        self,
        catalog: Catalog,
        recipe: Recipe | None = None,
        drift_policy: ConditionDriftPolicy | None = None,
        adapter: NativeParityAdapter | None = None,
    ) -> None:
        self.catalog = catalog
        self.recipe = recipe or Recipe()
        self.adapter = adapter
        self.engine = TransitionEngine(catalog, self.recipe, drift_policy, adapter)

    def recommend(self, state: CraftState, config: AdvisorConfig | None = None) -> Recommendation:
        """Rank the legal first actions for `state`.

        Any engine error aborts the whole search and is reported as a
        failed Recommendation; partial rankings are never returned.
        """
        config = config or AdvisorConfig()
        started = time.perf_counter()
        if self.adapter is not None:
            self.adapter.reset_drift()
        search = _Search(self.engine, config)
        try:
            result = self._recommend(state, search)
        except AdvisorError as exc:
            logger.error("Recommendation failed with %s: %s", exc.kind, exc)
            result = Recommendation(
                success=False,
                error_kind=exc.kind,
                messages=[str(exc)],
            )
        search.metrics.elapsed_ms = (time.perf_counter() - started) * 1000.0
        result.metrics = search.metrics
        if self.adapter is not None:
            result.parity_drift = self.adapter.reset_drift()
        return result

    def _recommend(self, state: CraftState, search: _Search) -> Recommendation:
        state.validate(self.catalog, self.engine.completion_cap, self.engine.perfection_cap)
        state = self.engine.with_visible_forecast(state)
        status = self.engine.classify(state)
        if status.is_terminal:
            return Recommendation(
                success=True,
                status=status,
                messages=[f"Craft is {status.value}; no further actions."],
            )

        actions, blocked = self.engine.resolver.partition(state)
        if not actions:
            return Recommendation(
                success=True,
                status=status,
                blocked_reasons=blocked,
                messages=["No technique is currently usable."],
            )

        config = search.config
        messages: list[str] = []
        if config.max_nodes is None:
            depth = config.lookahead_depth
            ranked = search.rank(state, actions, depth)
        else:
            depth, ranked = 0, []
            for attempt in range(1, config.lookahead_depth + 1):
                try:
                    ranked = search.rank(state, actions, attempt)
                except _NodeBudgetExhausted:
                    search.metrics.budget_exhausted = True
                    messages.append(
                        f"Node budget of {config.max_nodes} reached at depth {attempt}; "
                        f"showing depth {depth}."
                    )
                    logger.info("Node budget exhausted at depth %d", attempt)
                    break
                depth = attempt
        search.metrics.depth = depth

        limit = 1 + config.max_alternatives
        plans = [self._plan(state, search, entry, depth - 1) for entry in ranked[:limit]]
        logger.debug(
            "Ranked %d actions at depth %d; best %s (%.3f)",
            len(ranked),
            depth,
            plans[0].technique_id,
            plans[0].score,
        )
        return Recommendation(
            success=True,
            status=status,
            best=plans[0],
            alternatives=plans[1:],
            blocked_reasons=blocked,
            messages=messages,
        )

    def _plan(self, state: CraftState, search: _Search, entry: _Ranked, remaining: int) -> ActionPlan:
        outcome = entry.outcome
        technique = outcome.resolved.technique
        completion = expected_value(outcome, "completion") - state.completion
        perfection = expected_value(outcome, "perfection") - state.perfection
        stability = expected_value(outcome, "stability") - state.stability
        return ActionPlan(
            technique_id=technique.technique_id,
            name=technique.name,
            type=technique.type.value,
            rotation=search.principal_variation(outcome, remaining),
            expected_completion_gain=completion,
            expected_perfection_gain=perfection,
            expected_stability_change=stability,
            expected_overflow=entry.waste,
            cost=outcome.resolved.cost,
            success_chance=outcome.success_chance,
            score=entry.value,
            success_state=outcome.success,
            failure_state=outcome.failure,
            reasoning=self._reasoning(outcome, completion, perfection, entry.waste),
        )

    def _reasoning(
        self,
        outcome: StepOutcome,
        completion: float,
        perfection: float,
        waste: float,
    ) -> str:
        parts: list[str] = []
        if completion > 0:
            parts.append(f"+{completion:g} completion")
        if perfection > 0:
            parts.append(f"+{perfection:g} perfection")
        if waste > 0:
            parts.append(f"wastes {waste:g} past the cap")
        if outcome.success is not None and self.engine.classify(outcome.success) is CraftStatus.COMPLETED:
            parts.append("completes the craft")
        if any(self.engine.classify(s) is CraftStatus.FAILED for _, s, _ in outcome.branches()):
            parts.append("risks failing the craft")
        if outcome.success_chance < 1.0:
            parts.append(f"{outcome.success_chance:.0%} success")
        if not parts:
            parts.append(f"{outcome.resolved.technique.type.value} setup")
        return ", ".join(parts)


def recommend(
    state: CraftState,
    catalog: Catalog,
    depth: int = 3,
    weights: ScoringWeights | None = None,
    *,
    recipe: Recipe | None = None,
    config: AdvisorConfig | None = None,
    drift_policy: ConditionDriftPolicy | None = None,
    adapter: NativeParityAdapter | None = None,
) -> Recommendation:
    """One-shot recommendation; `config` overrides `depth` and `weights`."""
    if config is None:
        config = AdvisorConfig(lookahead_depth=depth, weights=weights or ScoringWeights())
    return Advisor(catalog, recipe, drift_policy, adapter).recommend(state, config)

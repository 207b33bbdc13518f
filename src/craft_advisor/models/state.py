"""Immutable snapshot of an in-progress craft.

States are produced by the transition engine and never mutated in place:
every transition builds a new CraftState via `evolve()`. The dict fields
are treated as read-only; `evolve()` copies them before handing them out.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum

from craft_advisor.models.catalog import Catalog
from craft_advisor.models.condition import CraftCondition
from craft_advisor.models.errors import InvalidState


class CraftStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"   # turn limit reached

    @property
    def is_terminal(self) -> bool:
        return self is not CraftStatus.IN_PROGRESS


DEFAULT_STATS: dict[str, float] = {
    "control": 0.0,
    "intensity": 0.0,
    "critchance": 0.0,
    "critmultiplier": 150.0,
}


@dataclass(frozen=True, slots=True)
class CraftState:
    """Resource pools, progress, condition and buffs at one point of a craft."""

    pool: int = 0
    max_pool: int = 0
    stability: int = 0
    max_stability: int = 0
    toxicity: int = 0
    completion: int = 0
    perfection: int = 0
    completion_overflow: int = 0   # gains clamped away by the completion cap
    perfection_overflow: int = 0
    condition: CraftCondition = CraftCondition.NEUTRAL
    condition_queue: tuple[CraftCondition, ...] = ()
    active_buffs: dict[str, int] = field(default_factory=dict)
    cooldowns: dict[str, int] = field(default_factory=dict)
    turn: int = 0
    stats: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_STATS))
    history: tuple[str, ...] = ()

    def evolve(self, **changes) -> CraftState:
        """Return a copy with `changes` applied; dict fields are copied."""
        for name in ("active_buffs", "cooldowns", "stats"):
            if name not in changes:
                changes[name] = dict(getattr(self, name))
        return dataclasses.replace(self, **changes)

    def stacks(self, buff_id: str) -> int:
        return int(self.active_buffs.get(buff_id, 0))

    def cooldown(self, technique_id: str) -> int:
        return int(self.cooldowns.get(technique_id, 0))

    def validate(
        self,
        catalog: Catalog | None = None,
        completion_cap: float = math.inf,
        perfection_cap: float = math.inf,
    ) -> None:
        """Raise InvalidState listing every broken invariant.

        Progress above `completion_cap` or `perfection_cap` is a problem too.
        """
        problems: list[str] = []
        if self.pool < 0:
            problems.append(f"pool must be >= 0, got {self.pool}")
        if self.max_pool > 0 and self.pool > self.max_pool:
            problems.append(f"pool {self.pool} exceeds max pool {self.max_pool}")
        if self.stability < 0:
            problems.append(f"stability must be >= 0, got {self.stability}")
        if self.max_stability < 0:
            problems.append(f"max stability must be >= 0, got {self.max_stability}")
        if self.stability > self.max_stability:
            problems.append(
                f"stability {self.stability} exceeds max stability {self.max_stability}"
            )
        if self.toxicity < 0:
            problems.append(f"toxicity must be >= 0, got {self.toxicity}")
        if self.turn < 0:
            problems.append(f"turn must be >= 0, got {self.turn}")
        if self.completion > completion_cap:
            problems.append(f"completion {self.completion} exceeds cap {completion_cap:g}")
        if self.perfection > perfection_cap:
            problems.append(f"perfection {self.perfection} exceeds cap {perfection_cap:g}")
        for technique_id, turns in self.cooldowns.items():
            if turns < 0:
                problems.append(f"cooldown for {technique_id} must be >= 0, got {turns}")
        for buff_id, stacks in self.active_buffs.items():
            if stacks < 0:
                problems.append(f"stacks of {buff_id} must be >= 0, got {stacks}")
                continue
            if catalog is None:
                continue
            buff = catalog.buff(buff_id)
            if buff is not None and buff.max_stacks is not None and stacks > buff.max_stacks:
                problems.append(
                    f"stacks of {buff_id} ({stacks}) exceed max stacks {buff.max_stacks}"
                )
        if problems:
            raise InvalidState(problems)

    def cache_key(self) -> tuple:
        """Hashable key covering every field that affects future play."""
        return (
            self.pool,
            self.max_pool,
            self.stability,
            self.max_stability,
            self.toxicity,
            self.completion,
            self.perfection,
            self.completion_overflow,
            self.perfection_overflow,
            self.condition,
            self.condition_queue,
            tuple(self.active_buffs.items()),
            tuple(sorted((k, v) for k, v in self.cooldowns.items() if v > 0)),
            self.turn,
        )

    def __hash__(self) -> int:
        return hash(self.cache_key())

    def __str__(self) -> str:
        return (
            f"Pool: {self.pool}/{self.max_pool}, "
            f"Stability: {self.stability}/{self.max_stability}, "
            f"Completion: {self.completion}, Perfection: {self.perfection}, "
            f"Condition: {self.condition.value}"
        )

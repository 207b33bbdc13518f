"""Buff definitions: stat modifiers plus effects keyed by trigger."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from craft_advisor.models.effect import Effect, Scaling


class BuffTrigger(str, Enum):
    ALWAYS = "always"
    ON_FUSION = "on_fusion"
    ON_REFINE = "on_refine"
    ON_STABILIZE = "on_stabilize"
    ON_SUPPORT = "on_support"


@dataclass(frozen=True, slots=True)
class Buff:
    """A parsed buff definition.

    `stats` maps a variable name (control, intensity, critchance,
    poolCostPercentage, stabilityCostPercentage, successChanceBonus, ...)
    to an additive modifier, evaluated with the buff's stack count bound
    to `stacks`.

    Self-consuming buffs lose one stack at the end of every turn, so
    their stack count doubles as a remaining duration.
    """
    buff_id: str
    name: str
    stackable: bool = True
    max_stacks: int | None = None
    self_consuming: bool = False
    stats: dict[str, Scaling] = field(default_factory=dict)
    triggers: dict[BuffTrigger, tuple[Effect, ...]] = field(default_factory=dict)

    def effects_for(self, trigger: BuffTrigger) -> tuple[Effect, ...]:
        return self.triggers.get(trigger, ())

    def clamp_stacks(self, stacks: int) -> int:
        stacks = max(0, int(stacks))
        if self.max_stacks is not None:
            stacks = min(stacks, self.max_stacks)
        return stacks

    def __hash__(self) -> int:
        return hash(self.buff_id)

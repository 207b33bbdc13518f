"""Per-craft rules: targets, caps, limits and the condition table."""

from __future__ import annotations

from dataclasses import dataclass, field

from craft_advisor.models.condition import (
    ConditionEffect,
    ConditionTable,
    CraftCondition,
    fallback_condition_effects,
)
from craft_advisor.models.state import CraftState, CraftStatus


@dataclass(slots=True)
class Recipe:
    """Rules of one craft that are not part of the mutable state.

    Caps default to `target * cap_multiplier` when a target is set,
    lowered to the explicit cap if one is given; without a target the
    explicit cap (or no cap) applies. A native cap getter, when the host
    provides one, takes precedence over both.
    """

    completion_target: int = 0
    perfection_target: int = 0
    completion_cap: int | None = None
    perfection_cap: int | None = None
    cap_multiplier: float = 1.0      # 2.0 for sublime crafts
    turn_limit: int | None = None
    max_toxicity: int | None = None
    max_stability_loss_per_use: int = 1
    condition_effects: ConditionTable = field(default_factory=dict)
    condition_effect_type: str | None = None

    def effects_for(self, condition: CraftCondition) -> tuple[ConditionEffect, ...]:
        """Condition effects from host data, else the fallback table."""
        if self.condition_effects:
            return tuple(self.condition_effects.get(condition, ()))
        if self.condition_effect_type:
            return fallback_condition_effects(self.condition_effect_type, condition)
        return ()

    def classify(self, state: CraftState) -> CraftStatus:
        """Failed beats completed beats exhausted."""
        if state.stability <= 0:
            return CraftStatus.FAILED
        if self.completion_target > 0 and state.completion >= self.completion_target:
            return CraftStatus.COMPLETED
        if self.turn_limit is not None and state.turn >= self.turn_limit:
            return CraftStatus.EXHAUSTED
        return CraftStatus.IN_PROGRESS

    def local_completion_cap(self) -> float:
        return _local_cap(self.completion_target, self.completion_cap, self.cap_multiplier)

    def local_perfection_cap(self) -> float:
        return _local_cap(self.perfection_target, self.perfection_cap, self.cap_multiplier)


def _local_cap(target: int, explicit: int | None, multiplier: float) -> float:
    if target > 0:
        cap = float(int(target * multiplier))
        if explicit is not None:
            cap = min(cap, float(explicit))
        return cap
    if explicit is not None:
        return float(explicit)
    return float("inf")

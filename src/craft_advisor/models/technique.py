"""Technique definitions with typed costs, requirements and mastery tiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from craft_advisor.models.buff import BuffTrigger
from craft_advisor.models.condition import CraftCondition
from craft_advisor.models.effect import Effect


class TechniqueType(str, Enum):
    FUSION = "fusion"
    REFINE = "refine"
    STABILIZE = "stabilize"
    SUPPORT = "support"

    @property
    def buff_trigger(self) -> BuffTrigger:
        """Buff trigger fired when a technique of this type is used."""
        return _TRIGGER_BY_TYPE[self]


_TRIGGER_BY_TYPE: dict[TechniqueType, BuffTrigger] = {
    TechniqueType.FUSION: BuffTrigger.ON_FUSION,
    TechniqueType.REFINE: BuffTrigger.ON_REFINE,
    TechniqueType.STABILIZE: BuffTrigger.ON_STABILIZE,
    TechniqueType.SUPPORT: BuffTrigger.ON_SUPPORT,
}


@dataclass(frozen=True, slots=True)
class BuffStackRequirement:
    """A buff stack count: required present (requirement) or consumed (cost)."""
    buff_id: str
    amount: int = 1


@dataclass(frozen=True, slots=True)
class MasteryTier:
    """Override applied at one mastery tier, after all other cost modifiers."""
    pool_cost_change: int = 0
    stability_cost_change: int = 0
    success_chance_change: float = 0.0
    effect_multiplier: float = 1.0   # scales the technique's own effect amounts


@dataclass(frozen=True, slots=True)
class Technique:
    """A parsed technique definition. Costs are pre-modifier base values."""
    technique_id: str
    name: str
    type: TechniqueType
    pool_cost: int = 0
    stability_cost: int = 0
    toxicity_cost: int = 0
    success_chance: float = 1.0
    cooldown: int = 0
    effects: tuple[Effect, ...] = ()
    buff_cost: BuffStackRequirement | None = None
    buff_requirement: BuffStackRequirement | None = None
    condition_requirement: CraftCondition | None = None
    no_max_stability_loss: bool = False
    mastery_tier: int = 0
    mastery: dict[int, MasteryTier] = field(default_factory=dict)

    @property
    def active_mastery(self) -> MasteryTier | None:
        return self.mastery.get(self.mastery_tier)

    def __hash__(self) -> int:
        return hash(self.technique_id)

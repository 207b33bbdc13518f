"""Craft conditions and the stat modifiers each condition applies.

The host exposes the current condition plus a short forecast queue. Each
recipe declares how conditions modify control, intensity, pool cost,
stability cost or success chance; when the host does not ship that
table we fall back to the per-recipe-type defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CraftCondition(str, Enum):
    """Volatile craft-wide modifier state, ordered from worst to best."""
    VERY_NEGATIVE = "veryNegative"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    VERY_POSITIVE = "veryPositive"


# Host UI labels and synonyms → canonical condition.
_CONDITION_ALIASES: dict[str, CraftCondition] = {
    "neutral": CraftCondition.NEUTRAL,
    "balanced": CraftCondition.NEUTRAL,
    "positive": CraftCondition.POSITIVE,
    "harmonious": CraftCondition.POSITIVE,
    "negative": CraftCondition.NEGATIVE,
    "resistant": CraftCondition.NEGATIVE,
    "verypositive": CraftCondition.VERY_POSITIVE,
    "brilliant": CraftCondition.VERY_POSITIVE,
    "excellent": CraftCondition.VERY_POSITIVE,
    "verynegative": CraftCondition.VERY_NEGATIVE,
    "corrupted": CraftCondition.VERY_NEGATIVE,
}


def normalize_condition(value: str | CraftCondition | None) -> CraftCondition | None:
    """Map a host condition label to a CraftCondition, or None if unknown."""
    if value is None:
        return None
    if isinstance(value, CraftCondition):
        return value
    return _CONDITION_ALIASES.get(str(value).strip().lower())


@dataclass(frozen=True, slots=True)
class ConditionEffect:
    """One stat modifier applied while a condition is active.

    `kind`:
      - "control" / "intensity": stat *= 1 + multiplier
      - "pool" / "stability": cost *= multiplier
      - "chance": success chance += bonus
    """
    kind: str
    multiplier: float | None = None
    bonus: float | None = None


CONDITION_EFFECT_KINDS = frozenset({"control", "intensity", "pool", "stability", "chance"})

ConditionTable = dict[CraftCondition, tuple[ConditionEffect, ...]]

C = CraftCondition

# Fallback table keyed by recipe condition type. Used only when the host
# did not provide the recipe's own condition effects.
_FALLBACK_CONDITION_EFFECTS: dict[str, ConditionTable] = {
    "perfectable": {
        C.NEUTRAL: (),
        C.POSITIVE: (ConditionEffect("control", multiplier=0.5),),
        C.NEGATIVE: (ConditionEffect("control", multiplier=-0.5),),
        C.VERY_POSITIVE: (ConditionEffect("control", multiplier=1.0),),
        C.VERY_NEGATIVE: (ConditionEffect("control", multiplier=-1.0),),
    },
    "fuseable": {
        C.NEUTRAL: (),
        C.POSITIVE: (ConditionEffect("intensity", multiplier=0.5),),
        C.NEGATIVE: (ConditionEffect("intensity", multiplier=-0.5),),
        C.VERY_POSITIVE: (ConditionEffect("intensity", multiplier=1.0),),
        C.VERY_NEGATIVE: (ConditionEffect("intensity", multiplier=-1.0),),
    },
    "flowing": {
        C.NEUTRAL: (),
        C.POSITIVE: (
            ConditionEffect("control", multiplier=0.25),
            ConditionEffect("intensity", multiplier=0.25),
        ),
        C.NEGATIVE: (
            ConditionEffect("control", multiplier=-0.25),
            ConditionEffect("intensity", multiplier=-0.25),
        ),
        C.VERY_POSITIVE: (
            ConditionEffect("control", multiplier=0.5),
            ConditionEffect("intensity", multiplier=0.5),
        ),
        C.VERY_NEGATIVE: (
            ConditionEffect("control", multiplier=-0.5),
            ConditionEffect("intensity", multiplier=-0.5),
        ),
    },
    "energised": {
        C.NEUTRAL: (),
        C.POSITIVE: (ConditionEffect("pool", multiplier=0.7),),
        C.NEGATIVE: (ConditionEffect("pool", multiplier=1.3),),
        C.VERY_POSITIVE: (ConditionEffect("pool", multiplier=0.4),),
        C.VERY_NEGATIVE: (ConditionEffect("pool", multiplier=1.6),),
    },
    "stable": {
        C.NEUTRAL: (),
        C.POSITIVE: (ConditionEffect("stability", multiplier=0.7),),
        C.NEGATIVE: (ConditionEffect("stability", multiplier=1.3),),
        C.VERY_POSITIVE: (ConditionEffect("stability", multiplier=0.4),),
        C.VERY_NEGATIVE: (ConditionEffect("stability", multiplier=1.6),),
    },
    "fortuitous": {
        C.NEUTRAL: (),
        C.POSITIVE: (ConditionEffect("chance", bonus=0.25),),
        C.NEGATIVE: (ConditionEffect("chance", bonus=-0.25),),
        C.VERY_POSITIVE: (ConditionEffect("chance", bonus=0.5),),
        C.VERY_NEGATIVE: (ConditionEffect("chance", bonus=-0.5),),
    },
}

RECIPE_CONDITION_TYPES = frozenset(_FALLBACK_CONDITION_EFFECTS)


def fallback_condition_effects(
    condition_type: str,
    condition: CraftCondition,
) -> tuple[ConditionEffect, ...]:
    """Default condition effects for a recipe condition type."""
    table = _FALLBACK_CONDITION_EFFECTS.get(condition_type)
    if table is None:
        return ()
    return table.get(condition, ())

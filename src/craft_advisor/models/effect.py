"""Scaling expressions and the atomic effects techniques and buffs trigger.

Effects form a closed set: one frozen dataclass per kind. The effect
resolver dispatches on these classes and rejects anything else with
UnsupportedEffect, so a new kind has to be added here and handled there.
"""

from __future__ import annotations

from dataclasses import dataclass

from craft_advisor.models.condition import CraftCondition


@dataclass(frozen=True, slots=True)
class Scaling:
    """An amount: base value plus optional variable-driven terms and a cap.

    Resolves to
        base_value
        + stat_multiplier * variables[stat_reference]
        + variable_multiplier * variables[named_variable]
        + additive_eqn(variables)
    clamped to `cap` (itself a Scaling) when present.
    """
    base_value: float = 0.0
    stat_reference: str | None = None
    stat_multiplier: float = 1.0
    named_variable: str | None = None
    variable_multiplier: float = 1.0
    additive_eqn: str | None = None
    cap: Scaling | None = None


def flat(value: float) -> Scaling:
    """Shorthand for a constant Scaling."""
    return Scaling(base_value=float(value))


@dataclass(frozen=True, slots=True)
class CompletionEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class PerfectionEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class StabilityEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class MaxStabilityEffect:
    """Changes max stability; negative amounts shrink it."""
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class PoolEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class CreateBuffEffect:
    """Grants `amount` stacks of a buff (1 when the amount resolves to 0)."""
    buff_id: str
    amount: Scaling = Scaling(base_value=1.0)
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class ConsumeBuffEffect:
    buff_id: str
    amount: Scaling = Scaling(base_value=1.0)
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class AddStackEffect:
    """Adds stacks to an active buff; buff_id=None targets the owning buff."""
    amount: Scaling = Scaling(base_value=1.0)
    buff_id: str | None = None
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class CleanseToxicityEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class ChangeToxicityEffect:
    amount: Scaling
    when: CraftCondition | None = None


@dataclass(frozen=True, slots=True)
class NegateEffect:
    """Suppresses every later effect in the same trigger batch."""
    amount: Scaling = Scaling()
    when: CraftCondition | None = None


Effect = (
    CompletionEffect
    | PerfectionEffect
    | StabilityEffect
    | MaxStabilityEffect
    | PoolEffect
    | CreateBuffEffect
    | ConsumeBuffEffect
    | AddStackEffect
    | CleanseToxicityEffect
    | NegateEffect
    | ChangeToxicityEffect
)

# Host effect kind → model class.
EFFECT_TYPES: dict[str, type] = {
    "completion": CompletionEffect,
    "perfection": PerfectionEffect,
    "stability": StabilityEffect,
    "maxStability": MaxStabilityEffect,
    "pool": PoolEffect,
    "createBuff": CreateBuffEffect,
    "consumeBuff": ConsumeBuffEffect,
    "addStack": AddStackEffect,
    "cleanseToxicity": CleanseToxicityEffect,
    "negate": NegateEffect,
    "changeToxicity": ChangeToxicityEffect,
}

EFFECT_KIND_NAMES: dict[type, str] = {cls: kind for kind, cls in EFFECT_TYPES.items()}

# Kinds that carry progress; suppressed when a technique roll fails.
PROGRESS_EFFECT_TYPES = (CompletionEffect, PerfectionEffect)

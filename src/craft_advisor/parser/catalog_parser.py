"""Parse host catalog JSON (techniques, buffs, effects) into models.

Host payloads use camelCase keys; snake_case spellings are accepted too.
Malformed shapes raise ValueError, unknown effect kinds UnsupportedEffect.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from craft_advisor.models.buff import Buff, BuffTrigger
from craft_advisor.models.catalog import Catalog
from craft_advisor.models.condition import CraftCondition, normalize_condition
from craft_advisor.models.effect import (
    EFFECT_TYPES,
    AddStackEffect,
    ConsumeBuffEffect,
    CreateBuffEffect,
    Effect,
    NegateEffect,
    Scaling,
    flat,
)
from craft_advisor.models.errors import UnsupportedEffect
from craft_advisor.models.technique import (
    BuffStackRequirement,
    MasteryTier,
    Technique,
    TechniqueType,
)

_TRIGGER_KEYS: dict[str, BuffTrigger] = {
    "always": BuffTrigger.ALWAYS,
    "onfusion": BuffTrigger.ON_FUSION,
    "on_fusion": BuffTrigger.ON_FUSION,
    "onrefine": BuffTrigger.ON_REFINE,
    "on_refine": BuffTrigger.ON_REFINE,
    "onstabilize": BuffTrigger.ON_STABILIZE,
    "on_stabilize": BuffTrigger.ON_STABILIZE,
    "onsupport": BuffTrigger.ON_SUPPORT,
    "on_support": BuffTrigger.ON_SUPPORT,
}

# Effects whose amount defaults to one stack when the host omits it.
_STACK_EFFECTS = (CreateBuffEffect, ConsumeBuffEffect, AddStackEffect)


def pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be a number, got {value!r}") from exc


def _int(value: Any, what: str) -> int:
    return int(_number(value, what))


def _object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _condition(value: Any, what: str) -> CraftCondition | None:
    if value is None:
        return None
    condition = normalize_condition(value)
    if condition is None:
        raise ValueError(f"{what}: unknown condition {value!r}")
    return condition


def parse_scaling(data: Any) -> Scaling:
    """Parse a scaling given as a number or an object.

    Host objects are multiplicative: `value` times `stat`, times `scaling`,
    times `eqn`, times `1 + customScaling.multiplier * var`, plus
    `additiveEqn`, capped by `max`. A single factor maps onto the stat or
    named-variable term; compound products become an equation.
    """
    if isinstance(data, (int, float)) and not isinstance(data, bool):
        return flat(data)
    data = _object(data, "scaling")

    cap_data = pick(data, "cap", "max")
    cap = parse_scaling(cap_data) if cap_data is not None else None

    if "base_value" in data or "stat_reference" in data or "named_variable" in data:
        return Scaling(
            base_value=_number(data.get("base_value", 0), "base_value"),
            stat_reference=data.get("stat_reference"),
            stat_multiplier=_number(data.get("stat_multiplier", 1), "stat_multiplier"),
            named_variable=data.get("named_variable"),
            variable_multiplier=_number(data.get("variable_multiplier", 1), "variable_multiplier"),
            additive_eqn=data.get("additive_eqn"),
            cap=cap,
        )

    value = _number(pick(data, "value", "baseValue", default=0), "scaling value")
    stat = data.get("stat")
    variable = data.get("scaling")
    eqn = data.get("eqn")
    custom = data.get("customScaling")
    additive = data.get("additiveEqn")

    if stat and not (variable or eqn or custom):
        scaling = Scaling(stat_reference=stat, stat_multiplier=value, additive_eqn=additive)
    elif variable and not (stat or eqn or custom):
        scaling = Scaling(named_variable=variable, variable_multiplier=value, additive_eqn=additive)
    elif stat or variable or eqn or custom:
        factors = [repr(value)]
        factors.extend(name for name in (stat, variable) if name)
        if eqn:
            factors.append(f"({eqn})")
        if custom:
            custom = _object(custom, "customScaling")
            multiplier = _number(custom.get("multiplier", 0), "customScaling multiplier")
            factors.append(f"(1 + {multiplier!r} * {custom.get('scaling', '0')})")
        expression = " * ".join(factors)
        if additive:
            expression = f"{expression} + ({additive})"
        scaling = Scaling(additive_eqn=expression)
    else:
        scaling = Scaling(base_value=value, additive_eqn=additive)

    if cap is not None:
        scaling = dataclasses.replace(scaling, cap=cap)
    return scaling


def _buff_ref(value: Any) -> str | None:
    """Buff reference as a bare id or an embedded buff object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        ref = pick(value, "id", "buffId", "buff_id", "name")
        if isinstance(ref, str):
            return ref
    raise ValueError(f"invalid buff reference {value!r}")


def parse_effect(data: Any) -> Effect:
    data = _object(data, "effect")
    kind = data.get("kind")
    if not isinstance(kind, str):
        raise ValueError(f"effect is missing a kind: {data!r}")
    cls = EFFECT_TYPES.get(kind)
    if cls is None:
        raise UnsupportedEffect(kind)

    amount_data = pick(data, "amount", "stacks", "value")
    when = _condition(pick(data, "when", "condition"), f"{kind} effect")
    kwargs: dict[str, Any] = {"when": when}
    if amount_data is not None:
        kwargs["amount"] = parse_scaling(amount_data)
    elif cls is not NegateEffect and cls not in _STACK_EFFECTS:
        raise ValueError(f"{kind} effect requires an amount")

    buff_id = _buff_ref(pick(data, "buff", "buffId", "buff_id"))
    if cls in (CreateBuffEffect, ConsumeBuffEffect):
        if buff_id is None:
            raise ValueError(f"{kind} effect requires a buff")
        kwargs["buff_id"] = buff_id
    elif cls is AddStackEffect:
        kwargs["buff_id"] = buff_id
    return cls(**kwargs)


def parse_effects(data: Any, what: str = "effects") -> tuple[Effect, ...]:
    if data is None:
        return ()
    return tuple(parse_effect(e) for e in _list(data, what))


def _stack_requirement(data: Any, what: str) -> BuffStackRequirement | None:
    if data is None:
        return None
    data = _object(data, what)
    buff_id = _buff_ref(pick(data, "buff", "buffId", "buff_id", "buffName"))
    if buff_id is None:
        raise ValueError(f"{what} requires a buff")
    return BuffStackRequirement(buff_id, _int(data.get("amount", 1), f"{what} amount"))


def _mastery(data: Any, technique_id: str) -> dict[int, MasteryTier]:
    if data is None:
        return {}
    tiers: dict[int, MasteryTier] = {}
    for tier, raw in _object(data, f"{technique_id} mastery").items():
        raw = _object(raw, f"{technique_id} mastery tier {tier}")
        what = f"{technique_id} mastery tier {tier}"
        tiers[_int(tier, what)] = MasteryTier(
            pool_cost_change=_int(pick(raw, "poolCostChange", "pool_cost_change", default=0), what),
            stability_cost_change=_int(
                pick(raw, "stabilityCostChange", "stability_cost_change", default=0), what
            ),
            success_chance_change=_number(
                pick(raw, "successChanceChange", "success_chance_change", default=0), what
            ),
            effect_multiplier=_number(
                pick(raw, "effectMultiplier", "effect_multiplier", default=1), what
            ),
        )
    return tiers


def parse_technique(data: Any) -> Technique:
    data = _object(data, "technique")
    technique_id = pick(data, "id", "key", "technique_id")
    if not isinstance(technique_id, str) or not technique_id:
        raise ValueError(f"technique is missing an id: {data!r}")
    try:
        technique_type = TechniqueType(str(data.get("type", "")).lower())
    except ValueError as exc:
        raise ValueError(f"{technique_id}: unknown technique type {data.get('type')!r}") from exc

    chance = _number(pick(data, "successChance", "success_chance", default=1), technique_id)
    if not 0.0 <= chance <= 1.0:
        raise ValueError(f"{technique_id}: success chance {chance} outside [0, 1]")

    return Technique(
        technique_id=technique_id,
        name=str(data.get("name", technique_id)),
        type=technique_type,
        pool_cost=_int(pick(data, "poolCost", "pool_cost", default=0), technique_id),
        stability_cost=_int(pick(data, "stabilityCost", "stability_cost", default=0), technique_id),
        toxicity_cost=_int(pick(data, "toxicityCost", "toxicity_cost", default=0), technique_id),
        success_chance=chance,
        cooldown=_int(data.get("cooldown", 0), technique_id),
        effects=parse_effects(data.get("effects"), f"{technique_id} effects"),
        buff_cost=_stack_requirement(pick(data, "buffCost", "buff_cost"), f"{technique_id} buff cost"),
        buff_requirement=_stack_requirement(
            pick(data, "buffRequirement", "buff_requirement"), f"{technique_id} buff requirement"
        ),
        condition_requirement=_condition(
            pick(data, "conditionRequirement", "condition_requirement"), technique_id
        ),
        no_max_stability_loss=bool(
            pick(data, "noMaxStabilityLoss", "no_max_stability_loss", "preventsMaxStabilityDecay",
                 default=False)
        ),
        mastery_tier=_int(pick(data, "masteryTier", "mastery_tier", default=0), technique_id),
        mastery=_mastery(data.get("mastery"), technique_id),
    )


def parse_buff(data: Any) -> Buff:
    data = _object(data, "buff")
    buff_id = pick(data, "id", "buffId", "buff_id", "name")
    if not isinstance(buff_id, str) or not buff_id:
        raise ValueError(f"buff is missing an id: {data!r}")

    stats = {
        str(stat): parse_scaling(raw)
        for stat, raw in _object(data.get("stats") or {}, f"{buff_id} stats").items()
    }

    triggers: dict[BuffTrigger, tuple[Effect, ...]] = {}
    raw_triggers = pick(data, "triggers", "effects", default={})
    for key, effects in _object(raw_triggers, f"{buff_id} triggers").items():
        trigger = _TRIGGER_KEYS.get(str(key).lower())
        if trigger is None:
            raise ValueError(f"{buff_id}: unknown buff trigger {key!r}")
        triggers[trigger] = parse_effects(effects, f"{buff_id} {key}")

    max_stacks = pick(data, "maxStacks", "max_stacks")
    return Buff(
        buff_id=buff_id,
        name=str(data.get("name", buff_id)),
        stackable=bool(pick(data, "stackable", "canStack", default=True)),
        max_stacks=_int(max_stacks, f"{buff_id} max stacks") if max_stacks is not None else None,
        self_consuming=bool(pick(data, "selfConsuming", "self_consuming", default=False)),
        stats=stats,
        triggers=triggers,
    )


def catalog_from_dict(data: Any) -> Catalog:
    """Build a Catalog from `{"techniques": [...], "buffs": [...]}`."""
    data = _object(data, "catalog")
    techniques = [parse_technique(t) for t in _list(data.get("techniques", []), "techniques")]
    raw_buffs = data.get("buffs", [])
    if isinstance(raw_buffs, dict):
        raw_buffs = [{"id": key, **_object(value, f"buff {key}")} for key, value in raw_buffs.items()]
    buffs = [parse_buff(b) for b in _list(raw_buffs, "buffs")]
    return Catalog.build(techniques, buffs)

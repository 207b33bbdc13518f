"""Parse host craft snapshots (state plus recipe rules) into models."""

from __future__ import annotations

from typing import Any

from craft_advisor.models.condition import (
    CONDITION_EFFECT_KINDS,
    ConditionEffect,
    ConditionTable,
    CraftCondition,
    normalize_condition,
)
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import DEFAULT_STATS, CraftState
from craft_advisor.parser.catalog_parser import pick


def _int(data: dict[str, Any], *keys: str, default: int = 0) -> int:
    value = pick(data, *keys, default=default)
    if isinstance(value, bool):
        raise ValueError(f"{keys[0]} must be a number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{keys[0]} must be a number, got {value!r}") from exc


def _optional_int(data: dict[str, Any], *keys: str) -> int | None:
    if pick(data, *keys) is None:
        return None
    return _int(data, *keys)


def _condition(value: Any) -> CraftCondition:
    if value is None:
        return CraftCondition.NEUTRAL
    condition = normalize_condition(value)
    if condition is None:
        raise ValueError(f"unknown condition {value!r}")
    return condition


def _count(value: Any, what: str, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{what} value for {key} must be a number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} value for {key} must be a number, got {value!r}") from exc


def _counts(value: Any, what: str) -> dict[str, int]:
    """`{id: n}` or `[{"id": ..., "stacks": n}]` → `{id: n}`, order kept."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k): _count(v, what, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        counts: dict[str, int] = {}
        for entry in value:
            if not isinstance(entry, dict):
                raise ValueError(f"{what} entries must be objects, got {entry!r}")
            key = pick(entry, "id", "buffId", "name", "key")
            if not isinstance(key, str):
                raise ValueError(f"{what} entry is missing an id: {entry!r}")
            counts[key] = _count(pick(entry, "stacks", "turns", "value", default=0), what, key)
        return counts
    raise ValueError(f"{what} must be an object or a list")


def state_from_dict(data: Any) -> CraftState:
    """Build a CraftState from a host snapshot.

    Invariants are not checked here; the advisor validates before
    searching so the error is reported alongside the recommendation.
    """
    if not isinstance(data, dict):
        raise ValueError("snapshot state must be an object")

    stats = dict(DEFAULT_STATS)
    raw_stats = data.get("stats") or {}
    if not isinstance(raw_stats, dict):
        raise ValueError("stats must be an object")
    for name, value in raw_stats.items():
        try:
            stats[str(name)] = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"stat {name!r} must be a number, got {value!r}") from exc

    queue = pick(data, "conditionQueue", "condition_queue", "nextConditions", default=[])
    if not isinstance(queue, list):
        raise ValueError("condition queue must be a list")

    history = pick(data, "history", default=[])
    if not isinstance(history, list):
        raise ValueError("history must be a list")

    return CraftState(
        pool=_int(data, "pool", "qi"),
        max_pool=_int(data, "maxPool", "max_pool", "maxQi"),
        stability=_int(data, "stability"),
        max_stability=_int(data, "maxStability", "max_stability"),
        toxicity=_int(data, "toxicity"),
        completion=_int(data, "completion"),
        perfection=_int(data, "perfection"),
        completion_overflow=_int(data, "completionOverflow", "completion_overflow"),
        perfection_overflow=_int(data, "perfectionOverflow", "perfection_overflow"),
        condition=_condition(data.get("condition")),
        condition_queue=tuple(_condition(c) for c in queue),
        active_buffs=_counts(pick(data, "activeBuffs", "active_buffs", "buffs"), "buffs"),
        cooldowns=_counts(data.get("cooldowns"), "cooldowns"),
        turn=_int(data, "turn", "step"),
        stats=stats,
        history=tuple(str(h) for h in history),
    )


def _condition_table(data: Any) -> ConditionTable:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("condition effects must be an object")
    table: ConditionTable = {}
    for label, effects in data.items():
        condition = _condition(label)
        if not isinstance(effects, list):
            raise ValueError(f"condition effects for {label} must be a list")
        parsed = []
        for raw in effects:
            if not isinstance(raw, dict) or raw.get("kind") not in CONDITION_EFFECT_KINDS:
                raise ValueError(f"invalid condition effect for {label}: {raw!r}")
            multiplier = raw.get("multiplier")
            bonus = raw.get("bonus")
            parsed.append(
                ConditionEffect(
                    raw["kind"],
                    multiplier=float(multiplier) if multiplier is not None else None,
                    bonus=float(bonus) if bonus is not None else None,
                )
            )
        table[condition] = tuple(parsed)
    return table


def recipe_from_dict(data: Any) -> Recipe:
    if data is None:
        return Recipe()
    if not isinstance(data, dict):
        raise ValueError("recipe must be an object")
    multiplier = pick(data, "capMultiplier", "cap_multiplier", default=1.0)
    try:
        multiplier = float(multiplier)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"cap multiplier must be a number, got {multiplier!r}") from exc
    return Recipe(
        completion_target=_int(data, "completionTarget", "completion_target"),
        perfection_target=_int(data, "perfectionTarget", "perfection_target"),
        completion_cap=_optional_int(data, "completionCap", "completion_cap"),
        perfection_cap=_optional_int(data, "perfectionCap", "perfection_cap"),
        cap_multiplier=multiplier,
        turn_limit=_optional_int(data, "turnLimit", "turn_limit"),
        max_toxicity=_optional_int(data, "maxToxicity", "max_toxicity"),
        max_stability_loss_per_use=_int(
            data, "maxStabilityLossPerUse", "max_stability_loss_per_use", default=1
        ),
        condition_effects=_condition_table(pick(data, "conditionEffects", "condition_effects")),
        condition_effect_type=pick(data, "conditionType", "condition_effect_type"),
    )


def snapshot_from_dict(data: Any) -> tuple[CraftState, Recipe]:
    """Split `{"state": {...}, "recipe": {...}}` (or a bare state) into models."""
    if not isinstance(data, dict):
        raise ValueError("snapshot must be an object")
    if "state" in data:
        return state_from_dict(data["state"]), recipe_from_dict(data.get("recipe"))
    return state_from_dict(data), recipe_from_dict(data.get("recipe"))

"""Tests for parsing host catalog JSON into techniques, buffs and effects."""

import pytest

from craft_advisor.engine.formula import evaluate
from craft_advisor.models.buff import BuffTrigger
from craft_advisor.models.condition import CraftCondition
from craft_advisor.models.effect import (
    AddStackEffect,
    CompletionEffect,
    ConsumeBuffEffect,
    CreateBuffEffect,
    NegateEffect,
    PerfectionEffect,
    Scaling,
    StabilityEffect,
    flat,
)
from craft_advisor.models.errors import UnsupportedEffect
from craft_advisor.models.technique import BuffStackRequirement, MasteryTier, TechniqueType
from craft_advisor.parser.catalog_parser import (
    catalog_from_dict,
    parse_buff,
    parse_effect,
    parse_scaling,
    parse_technique,
    pick,
)


SAMPLE_CATALOG = {
    "techniques": [
        {
            "id": "forceful_fusion",
            "name": "Forceful Fusion",
            "type": "fusion",
            "poolCost": 10,
            "stabilityCost": 2,
            "successChance": 0.9,
            "effects": [{"kind": "completion", "amount": {"value": 1.5, "stat": "intensity"}}],
            "masteryTier": 1,
            "mastery": {"1": {"poolCostChange": -2, "effectMultiplier": 1.2}},
        },
        {
            "id": "gathering",
            "type": "SUPPORT",
            "cooldown": 2,
            "noMaxStabilityLoss": True,
            "effects": [{"kind": "createBuff", "buff": "focus", "stacks": 2}],
        },
        {
            "id": "release",
            "type": "refine",
            "buffCost": {"buff": "focus", "amount": 2},
            "conditionRequirement": "harmonious",
            "effects": [{"kind": "perfection", "amount": 30}],
        },
    ],
    "buffs": {
        "focus": {
            "name": "Focus",
            "maxStacks": 5,
            "stats": {"control": {"value": 10, "stat": "stacks"}},
            "triggers": {"onRefine": [{"kind": "stability", "amount": 1}]},
        }
    },
}


# --- helpers ---

def test_pick_skips_missing_and_none():
    assert pick({"a": None, "b": 2}, "a", "b") == 2
    assert pick({}, "a", default=7) == 7


# --- scalings ---

def test_number_becomes_flat_scaling():
    assert parse_scaling(5) == flat(5)
    assert parse_scaling(2.5) == flat(2.5)


def test_single_stat_maps_to_stat_term():
    assert parse_scaling({"value": 0.5, "stat": "control"}) == Scaling(
        stat_reference="control", stat_multiplier=0.5
    )


def test_single_variable_maps_to_named_term():
    assert parse_scaling({"value": 2, "scaling": "stacks"}) == Scaling(
        named_variable="stacks", variable_multiplier=2.0
    )


def test_compound_product_becomes_equation():
    scaling = parse_scaling({"value": 2, "stat": "control", "scaling": "stacks"})
    assert scaling.stat_reference is None
    assert evaluate(scaling, {"control": 3.0, "stacks": 2.0}) == 12.0


@pytest.mark.parametrize(
    ("value", "expected"),
    [(1e-05, 20.0), (1e16, 2e22), (-2.5e-07, -0.5)],
)
def test_compound_product_keeps_exponent_constants(value, expected):
    scaling = parse_scaling({"value": value, "stat": "control", "scaling": "stacks"})
    assert evaluate(scaling, {"control": 1e6, "stacks": 2.0}) == pytest.approx(expected)


def test_custom_scaling_and_additive_equation():
    scaling = parse_scaling(
        {
            "value": 10,
            "customScaling": {"multiplier": 0.5, "scaling": "stacks"},
            "additiveEqn": "pool - 1",
        }
    )
    assert evaluate(scaling, {"stacks": 2.0, "pool": 4.0}) == 23.0


def test_plain_value_with_additive_equation():
    scaling = parse_scaling({"value": 3, "additiveEqn": "pool"})
    assert scaling == Scaling(base_value=3.0, additive_eqn="pool")


def test_max_becomes_cap():
    scaling = parse_scaling({"value": 1, "stat": "intensity", "max": {"value": 1, "stat": "pool"}})
    assert scaling.cap == Scaling(stat_reference="pool", stat_multiplier=1.0)
    assert evaluate(scaling, {"intensity": 50.0, "pool": 8.0}) == 8.0


def test_snake_case_scaling_maps_directly():
    scaling = parse_scaling({"base_value": 3, "stat_reference": "intensity", "stat_multiplier": 2, "cap": 10})
    assert scaling == Scaling(
        base_value=3.0, stat_reference="intensity", stat_multiplier=2.0, cap=flat(10)
    )


@pytest.mark.parametrize("bad", ["ten", True, [1, 2], {"value": "lots"}])
def test_malformed_scaling_raises(bad):
    with pytest.raises(ValueError):
        parse_scaling(bad)


# --- effects ---

def test_parse_progress_effects():
    assert parse_effect({"kind": "completion", "amount": 10}) == CompletionEffect(flat(10))
    assert parse_effect({"kind": "perfection", "value": 5, "when": "harmonious"}) == PerfectionEffect(
        flat(5), when=CraftCondition.POSITIVE
    )


def test_parse_buff_effects():
    assert parse_effect({"kind": "createBuff", "buff": "focus"}) == CreateBuffEffect("focus")
    assert parse_effect({"kind": "createBuff", "buff": {"name": "focus"}, "stacks": 2}) == CreateBuffEffect(
        "focus", flat(2)
    )
    assert parse_effect({"kind": "consumeBuff", "buffId": "focus", "amount": 3}) == ConsumeBuffEffect(
        "focus", flat(3)
    )
    assert parse_effect({"kind": "addStack", "stacks": 1}) == AddStackEffect(flat(1))
    assert parse_effect({"kind": "negate"}) == NegateEffect()


def test_unknown_effect_kind_is_unsupported():
    with pytest.raises(UnsupportedEffect) as excinfo:
        parse_effect({"kind": "teleport", "amount": 1})
    assert excinfo.value.effect_kind == "teleport"


@pytest.mark.parametrize(
    "bad",
    [
        {"amount": 3},
        {"kind": "completion"},
        {"kind": "consumeBuff"},
        {"kind": "createBuff", "buff": 12},
        {"kind": "stability", "amount": 1, "when": "stormy"},
        "completion",
    ],
)
def test_malformed_effects_raise_value_error(bad):
    with pytest.raises(ValueError):
        parse_effect(bad)


# --- techniques and buffs ---

def test_parse_technique_reads_costs_and_mastery():
    technique = parse_technique(SAMPLE_CATALOG["techniques"][0])
    assert technique.technique_id == "forceful_fusion"
    assert technique.name == "Forceful Fusion"
    assert technique.type is TechniqueType.FUSION
    assert (technique.pool_cost, technique.stability_cost) == (10, 2)
    assert technique.success_chance == 0.9
    assert technique.mastery == {1: MasteryTier(pool_cost_change=-2, effect_multiplier=1.2)}
    assert technique.active_mastery.effect_multiplier == 1.2


def test_parse_technique_requirements():
    release = parse_technique(SAMPLE_CATALOG["techniques"][2])
    assert release.buff_cost == BuffStackRequirement("focus", 2)
    assert release.condition_requirement is CraftCondition.POSITIVE
    assert release.name == "release"


@pytest.mark.parametrize(
    "bad",
    [
        {"type": "fusion"},
        {"id": "x", "type": "dance"},
        {"id": "x", "type": "fusion", "successChance": 1.5},
        {"id": "x", "type": "fusion", "poolCost": "many"},
        {"id": "x", "type": "fusion", "buffCost": {"amount": 1}},
    ],
)
def test_malformed_techniques_raise(bad):
    with pytest.raises(ValueError):
        parse_technique(bad)


def test_parse_buff_stats_and_triggers():
    buff = parse_buff({"id": "focus", **SAMPLE_CATALOG["buffs"]["focus"]})
    assert buff.max_stacks == 5
    assert buff.stackable
    assert buff.stats["control"] == Scaling(stat_reference="stacks", stat_multiplier=10.0)
    assert buff.effects_for(BuffTrigger.ON_REFINE) == (StabilityEffect(flat(1)),)
    assert buff.effects_for(BuffTrigger.ON_FUSION) == ()


def test_parse_buff_rejects_unknown_trigger():
    with pytest.raises(ValueError):
        parse_buff({"id": "focus", "triggers": {"onSneeze": []}})


def test_catalog_from_dict():
    catalog = catalog_from_dict(SAMPLE_CATALOG)
    assert [t.technique_id for t in catalog.techniques] == ["forceful_fusion", "gathering", "release"]
    assert catalog.technique("gathering").no_max_stability_loss
    assert catalog.technique("gathering").cooldown == 2
    assert catalog.buff("focus").name == "Focus"


def test_catalog_accepts_buff_list_and_rejects_duplicates():
    catalog = catalog_from_dict({"buffs": [{"id": "a", "selfConsuming": True}]})
    assert catalog.buff("a").self_consuming
    assert catalog.techniques == ()

    technique = {"id": "x", "type": "fusion"}
    with pytest.raises(ValueError):
        catalog_from_dict({"techniques": [technique, technique]})

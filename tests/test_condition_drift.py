"""Tests for condition drift policies and forecast normalisation."""

import pytest

from craft_advisor.engine.condition_drift import (
    ConditionTransition,
    ForecastDriftPolicy,
    HostDriftPolicy,
    StaticDriftPolicy,
    generated_distribution,
    most_likely,
    normalize_distribution,
    normalize_forecast_queue,
)
from craft_advisor.models.condition import CraftCondition

C = CraftCondition


# --- distributions ---

def test_normalize_distribution_merges_and_rescales():
    dist = normalize_distribution([(C.NEUTRAL, 1), (C.POSITIVE, 2), (C.NEUTRAL, 1), (C.NEGATIVE, 0)])
    assert dist == [(C.NEUTRAL, 0.5), (C.POSITIVE, 0.5)]


def test_normalize_distribution_drops_invalid_weights():
    assert normalize_distribution([(C.POSITIVE, float("nan")), (C.NEGATIVE, -1)]) == [(C.NEUTRAL, 1.0)]
    assert normalize_distribution([]) == [(C.NEUTRAL, 1.0)]


def test_extremes_relax_to_neutral():
    assert generated_distribution(C.NEUTRAL, [C.VERY_POSITIVE]) == [(C.NEUTRAL, 1.0)]
    assert generated_distribution(C.NEUTRAL, [C.VERY_NEGATIVE], harmony=-100) == [(C.NEUTRAL, 1.0)]


def test_positive_upgrades_with_harmony():
    assert generated_distribution(C.NEUTRAL, [C.POSITIVE]) == [(C.NEUTRAL, 1.0)]
    dist = generated_distribution(C.NEUTRAL, [C.POSITIVE], harmony=100)
    assert dist[0] == (C.NEUTRAL, pytest.approx(0.7))
    assert dist[1] == (C.VERY_POSITIVE, pytest.approx(0.3))


def test_negative_upgrades_only_with_negative_harmony():
    assert most_likely(generated_distribution(C.NEUTRAL, [C.NEGATIVE], harmony=100)) is C.NEUTRAL
    dist = dict(generated_distribution(C.NEUTRAL, [C.NEGATIVE], harmony=-50))
    assert dist[C.VERY_NEGATIVE] == pytest.approx(0.15)


def test_all_neutral_forecast_always_changes():
    dist = generated_distribution(C.NEUTRAL, [C.NEUTRAL, C.NEUTRAL])
    assert dist == [(C.POSITIVE, 0.5), (C.NEGATIVE, 0.5)]


def test_trailing_neutrals_raise_change_chance():
    dist = dict(generated_distribution(C.POSITIVE, [C.NEUTRAL, C.NEUTRAL]))
    assert dist[C.NEUTRAL] == pytest.approx(0.7)
    assert dist[C.POSITIVE] == pytest.approx(0.15)
    assert dist[C.NEGATIVE] == pytest.approx(0.15)


def test_harmony_skews_direction_of_change():
    dist = dict(generated_distribution(C.NEUTRAL, [], harmony=100))
    assert dist == {C.POSITIVE: 1.0}


# --- forecast queue ---

def test_normalize_forecast_queue_fills_most_likely():
    assert normalize_forecast_queue(C.NEUTRAL, []) == (C.POSITIVE, C.NEUTRAL, C.NEUTRAL)


def test_normalize_forecast_queue_after_extreme():
    assert normalize_forecast_queue("neutral", ["veryPositive"]) == (
        C.VERY_POSITIVE,
        C.NEUTRAL,
        C.NEUTRAL,
    )


def test_normalize_forecast_queue_trims_and_coerces():
    queue = ["harmonious", "stormy", C.NEGATIVE, C.NEGATIVE, C.POSITIVE]
    assert normalize_forecast_queue(None, queue) == (C.POSITIVE, C.NEUTRAL, C.NEGATIVE)
    assert normalize_forecast_queue(C.NEUTRAL, queue, length=1) == (C.POSITIVE,)
    assert normalize_forecast_queue(C.NEUTRAL, queue, length=0) == ()


# --- policies ---

def test_static_policy():
    transitions = StaticDriftPolicy().transitions(C.NEGATIVE, [C.POSITIVE])
    assert transitions == [ConditionTransition(C.NEGATIVE, (C.POSITIVE,), 1.0)]


def test_forecast_policy_shifts_head_and_branches_tail():
    transitions = ForecastDriftPolicy().transitions(C.NEUTRAL, [C.POSITIVE, C.NEUTRAL, C.NEUTRAL])

    assert [t.next_condition for t in transitions] == [C.POSITIVE, C.POSITIVE]
    assert [t.next_queue for t in transitions] == [
        (C.NEUTRAL, C.NEUTRAL, C.NEUTRAL),
        (C.NEUTRAL, C.NEUTRAL, C.POSITIVE),
    ]
    assert sum(t.probability for t in transitions) == pytest.approx(1.0)
    assert transitions[0].probability == pytest.approx(0.7 / 0.85)


def test_forecast_policy_drops_unlikely_branches():
    transitions = ForecastDriftPolicy().transitions(C.NEUTRAL, [C.NEGATIVE, C.POSITIVE, C.NEUTRAL])
    assert transitions == [ConditionTransition(C.NEGATIVE, (C.POSITIVE, C.NEUTRAL, C.NEUTRAL), 1.0)]


def test_forecast_policy_branch_limit_one():
    policy = ForecastDriftPolicy(branch_limit=1)
    transitions = policy.transitions(C.NEUTRAL, [C.POSITIVE, C.NEUTRAL, C.NEUTRAL])
    assert len(transitions) == 1
    assert transitions[0].probability == 1.0


def test_forecast_policy_without_queue_draws_next_condition():
    transitions = ForecastDriftPolicy().transitions(C.NEUTRAL, [])
    assert transitions == [
        ConditionTransition(C.POSITIVE, (C.NEUTRAL,), 0.5),
        ConditionTransition(C.NEGATIVE, (C.NEUTRAL,), 0.5),
    ]


def test_host_policy_normalises_provider_output():
    calls = []

    def provider(condition, queue):
        calls.append((condition, queue))
        return [
            {"nextCondition": "harmonious", "nextQueue": ["neutral"], "probability": 0.6},
            {"next_condition": C.NEGATIVE, "next_queue": (), "probability": 0.3},
            {"next_condition": C.NEUTRAL, "probability": 0},
            "junk",
        ]

    transitions = HostDriftPolicy(provider).transitions(C.NEUTRAL, [C.POSITIVE])

    assert calls == [(C.NEUTRAL, (C.POSITIVE,))]
    assert [(t.next_condition, t.next_queue) for t in transitions] == [
        (C.POSITIVE, (C.NEUTRAL,)),
        (C.NEGATIVE, ()),
    ]
    assert [t.probability for t in transitions] == pytest.approx([2 / 3, 1 / 3])


def test_host_policy_accepts_transition_objects():
    provided = [ConditionTransition(C.VERY_POSITIVE, (C.NEUTRAL,), 1.0)]
    policy = HostDriftPolicy(lambda condition, queue: provided)
    assert policy.transitions(C.POSITIVE, []) == provided


def test_host_policy_falls_back_on_error(caplog):
    def provider(condition, queue):
        raise RuntimeError("host exploded")

    policy = HostDriftPolicy(provider, fallback=StaticDriftPolicy())
    with caplog.at_level("WARNING"):
        transitions = policy.transitions(C.POSITIVE, [C.NEGATIVE])

    assert transitions == [ConditionTransition(C.POSITIVE, (C.NEGATIVE,), 1.0)]
    assert "host exploded" in caplog.text


def test_host_policy_falls_back_on_empty_output():
    policy = HostDriftPolicy(lambda condition, queue: [], fallback=StaticDriftPolicy())
    assert policy.transitions(C.NEUTRAL, []) == [ConditionTransition(C.NEUTRAL, (), 1.0)]


def test_host_policy_default_fallback_is_forecast():
    policy = HostDriftPolicy(lambda condition, queue: None)
    assert isinstance(policy.fallback, ForecastDriftPolicy)
    assert policy.transitions(C.NEUTRAL, [])[0].next_condition is C.POSITIVE


def test_visible_queue_pads_with_policy_harmony():
    policy = ForecastDriftPolicy(harmony=-100)
    assert policy.visible_queue(C.NEUTRAL, []) == (C.NEGATIVE, C.NEUTRAL, C.NEUTRAL)
    assert policy.visible_queue(C.NEUTRAL, ["positive"]) == (C.POSITIVE, C.NEUTRAL, C.NEUTRAL)


def test_host_policy_visible_queue_uses_fallback():
    assert HostDriftPolicy(lambda c, q: []).visible_queue(C.NEUTRAL, []) == (
        C.POSITIVE,
        C.NEUTRAL,
        C.NEUTRAL,
    )
    assert HostDriftPolicy(lambda c, q: [], StaticDriftPolicy()).visible_queue(C.NEUTRAL, [C.NEGATIVE]) == (
        C.NEGATIVE,
    )

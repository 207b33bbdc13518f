import pytest

from craft_advisor.optimizer.specs import (
    MAX_LOOKAHEAD_DEPTH,
    MIN_LOOKAHEAD_DEPTH,
    AdvisorConfig,
    ScoringWeights,
)


def test_defaults():
    config = AdvisorConfig()
    assert config.lookahead_depth == 3
    assert config.max_alternatives == 2
    assert config.branch_conditions is False
    assert config.use_cache is True
    assert config.weights == ScoringWeights()
    assert config.beam_width == 8
    assert config.max_nodes == 20_000


@pytest.mark.parametrize(
    ("depth", "expected"),
    [(-4, MIN_LOOKAHEAD_DEPTH), (0, MIN_LOOKAHEAD_DEPTH), (4, 4), (12, MAX_LOOKAHEAD_DEPTH)],
)
def test_depth_is_clamped(depth, expected):
    assert AdvisorConfig(lookahead_depth=depth).lookahead_depth == expected


def test_negative_alternatives_clamp_to_zero():
    assert AdvisorConfig(max_alternatives=-1).max_alternatives == 0


def test_config_from_dict():
    config = AdvisorConfig.from_dict(
        {
            "lookahead_depth": 5,
            "max_alternatives": 1,
            "branch_conditions": True,
            "use_cache": False,
            "weights": {"perfection": 2, "failure": "500"},
        }
    )
    assert config.lookahead_depth == 5
    assert config.max_alternatives == 1
    assert config.branch_conditions is True
    assert config.use_cache is False
    assert config.weights.perfection == 2.0
    assert config.weights.failure == 500.0
    assert config.weights.completion == 1.0


def test_config_from_none_is_default():
    assert AdvisorConfig.from_dict(None) == AdvisorConfig()


@pytest.mark.parametrize(
    "bad",
    [
        [],
        {"lookahead_depth": "3"},
        {"lookahead_depth": True},
        {"branch_conditions": "yes"},
        {"weights": {"speed": 1}},
        {"weights": {"completion": "lots"}},
        {"weights": [1]},
    ],
)
def test_config_from_dict_rejects_malformed(bad):
    with pytest.raises(ValueError):
        AdvisorConfig.from_dict(bad)


def test_search_limits_clamp_to_one():
    config = AdvisorConfig(beam_width=0, max_nodes=-5)
    assert config.beam_width == 1
    assert config.max_nodes == 1


@pytest.mark.parametrize(
    ("data", "beam_width", "max_nodes"),
    [
        ({"beam_width": 3, "max_nodes": 500}, 3, 500),
        ({"beam_width": None, "max_nodes": None}, None, None),
        ({"beam_width": 2.0}, 2, 20_000),
    ],
)
def test_search_limits_from_dict(data, beam_width, max_nodes):
    config = AdvisorConfig.from_dict(data)
    assert config.beam_width == beam_width
    assert config.max_nodes == max_nodes


@pytest.mark.parametrize("bad", [{"beam_width": "wide"}, {"max_nodes": True}, {"max_nodes": "10"}])
def test_search_limits_reject_non_numbers(bad):
    with pytest.raises(ValueError):
        AdvisorConfig.from_dict(bad)

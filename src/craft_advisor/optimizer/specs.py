"""Input specs for recommendation searches."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

MIN_LOOKAHEAD_DEPTH = 1
MAX_LOOKAHEAD_DEPTH = 6
DEFAULT_BEAM_WIDTH = 8
DEFAULT_MAX_NODES = 20_000


@dataclass(slots=True)
class ScoringWeights:
    """Scoring weights.

    Leaf value:
        completion * min(completion, cap) + perfection * min(perfection, cap)
        - failure * [failed] + target_bonus * [completed]
        + stability * stability + pool * pool

    `overflow` does not touch leaf values. It is charged once per first
    action, on the expected progress that action would waste past the caps.
    """

    completion: float = 1.0
    perfection: float = 1.0
    overflow: float = 0.3
    failure: float = 1000.0
    target_bonus: float = 100.0
    stability: float = 0.001      # tiebreak: keep more stability
    pool: float = 0.001

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoringWeights:
        if not isinstance(data, dict):
            raise ValueError("weights must be an object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown scoring weights: {', '.join(unknown)}")
        values: dict[str, float] = {}
        for name, raw in data.items():
            try:
                values[name] = float(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"weight {name!r} must be a number, got {raw!r}") from exc
        return cls(**values)


def _number(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return int(value)


@dataclass(slots=True)
class AdvisorConfig:
    """Caller-resolved search settings; nothing here is read from globals.

    Depth is clamped to 1..6: the tree grows as (2 * actions) ** depth.
    Below the root only the `beam_width` most promising techniques are
    expanded (None expands all). With `max_nodes` set the search deepens
    one level at a time and reports the deepest level that finished
    within the budget.
    """

    lookahead_depth: int = 3
    max_alternatives: int = 2
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    branch_conditions: bool = False   # expand every drift outcome, not just the likeliest
    use_cache: bool = True
    beam_width: int | None = DEFAULT_BEAM_WIDTH
    max_nodes: int | None = DEFAULT_MAX_NODES

    def __post_init__(self) -> None:
        self.lookahead_depth = max(
            MIN_LOOKAHEAD_DEPTH, min(MAX_LOOKAHEAD_DEPTH, int(self.lookahead_depth))
        )
        self.max_alternatives = max(0, int(self.max_alternatives))
        if self.beam_width is not None:
            self.beam_width = max(1, int(self.beam_width))
        if self.max_nodes is not None:
            self.max_nodes = max(1, int(self.max_nodes))

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AdvisorConfig:
        """Build a config from persisted settings, rejecting malformed values."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("config must be an object")
        kwargs: dict[str, Any] = {}
        for key in ("lookahead_depth", "max_alternatives"):
            if key in data:
                kwargs[key] = _number(key, data[key])
        for key in ("beam_width", "max_nodes"):
            if key in data:
                kwargs[key] = None if data[key] is None else _number(key, data[key])
        for key in ("branch_conditions", "use_cache"):
            if key in data:
                if not isinstance(data[key], bool):
                    raise ValueError(f"{key} must be true or false, got {data[key]!r}")
                kwargs[key] = data[key]
        if "weights" in data:
            kwargs["weights"] = ScoringWeights.from_dict(data["weights"])
        return cls(**kwargs)

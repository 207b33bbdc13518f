"""Condition drift: how the craft condition moves between turns.

The host only partly documents its rule, so drift is an injected policy.
A policy maps (current condition, visible forecast) to a list of
weighted transitions whose probabilities sum to 1, most likely first.
A policy may also offer `visible_queue(condition, queue)`, used to pad
the forecast to the host's visible length before a search starts.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from craft_advisor.models.condition import CraftCondition, normalize_condition

logger = logging.getLogger(__name__)

VISIBLE_QUEUE_LENGTH = 3

Distribution = list[tuple[CraftCondition, float]]


@dataclass(frozen=True, slots=True)
class ConditionTransition:
    next_condition: CraftCondition
    next_queue: tuple[CraftCondition, ...]
    probability: float = 1.0


class ConditionDriftPolicy(Protocol):
    def transitions(
        self,
        condition: CraftCondition,
        queue: Sequence[CraftCondition],
    ) -> list[ConditionTransition]:
        ...


def _clamp_probability(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _coerce(value: Any) -> CraftCondition:
    return normalize_condition(value) or CraftCondition.NEUTRAL


def normalize_distribution(entries: Sequence[tuple[CraftCondition, float]]) -> Distribution:
    """Merge duplicates, drop zero weights and rescale to sum 1.

    The result is sorted by descending probability; equal weights keep
    their first-seen order. An empty distribution becomes certain neutral.
    """
    merged: dict[CraftCondition, float] = {}
    for condition, probability in entries:
        p = _clamp_probability(probability)
        if p <= 0:
            continue
        merged[condition] = merged.get(condition, 0.0) + p
    total = sum(merged.values())
    if total <= 0:
        return [(CraftCondition.NEUTRAL, 1.0)]
    return sorted(
        ((c, p / total) for c, p in merged.items()),
        key=lambda entry: -entry[1],
    )


def generated_distribution(
    current: CraftCondition,
    queue: Sequence[CraftCondition],
    harmony: float = 0.0,
) -> Distribution:
    """Distribution of the condition appended after `queue`.

    Extreme conditions always relax to neutral. After a positive or
    negative condition there is a harmony-driven chance to intensify.
    Otherwise every trailing neutral adds 0.15 to the change chance, and
    an all-neutral forecast always changes.
    """
    harmony = max(-100.0, min(100.0, harmony))
    negative_delta = abs(harmony) / 100 if harmony < 0 else 0.0
    positive_delta = abs(harmony) / 100 if harmony > 0 else 0.0
    last = queue[-1] if queue else None

    if last in (CraftCondition.VERY_POSITIVE, CraftCondition.VERY_NEGATIVE):
        return [(CraftCondition.NEUTRAL, 1.0)]
    if last is CraftCondition.POSITIVE:
        upgrade = _clamp_probability(0.3 * positive_delta)
        return normalize_distribution([
            (CraftCondition.VERY_POSITIVE, upgrade),
            (CraftCondition.NEUTRAL, 1 - upgrade),
        ])
    if last is CraftCondition.NEGATIVE:
        upgrade = _clamp_probability(0.3 * negative_delta)
        return normalize_distribution([
            (CraftCondition.VERY_NEGATIVE, upgrade),
            (CraftCondition.NEUTRAL, 1 - upgrade),
        ])

    if current is CraftCondition.NEUTRAL and all(c is CraftCondition.NEUTRAL for c in queue):
        change = 1.0
    else:
        trailing_neutral = 0
        for condition in reversed(queue):
            if condition is not CraftCondition.NEUTRAL:
                break
            trailing_neutral += 1
        change = _clamp_probability(
            trailing_neutral * (0.15 + 0.15 * max(negative_delta, positive_delta))
        )

    positive_chance = _clamp_probability((harmony + 100) / 200)
    return normalize_distribution([
        (CraftCondition.NEUTRAL, 1 - change),
        (CraftCondition.POSITIVE, change * positive_chance),
        (CraftCondition.NEGATIVE, change * (1 - positive_chance)),
    ])


def most_likely(distribution: Distribution) -> CraftCondition:
    if not distribution:
        return CraftCondition.NEUTRAL
    return distribution[0][0]


class StaticDriftPolicy:
    """The condition never changes; the forecast is left untouched."""

    def transitions(self, condition, queue):
        return [ConditionTransition(condition, tuple(queue), 1.0)]


@dataclass(slots=True)
class ForecastDriftPolicy:
    """Shift the visible forecast and generate the condition that follows.

    When the forecast is non-empty its head becomes current and a new tail
    entry is drawn. With an empty forecast the next condition itself is
    drawn. At most `branch_limit` outcomes are kept, dropping those below
    `min_probability` when anything survives the cut.
    """

    harmony: float = 0.0
    branch_limit: int = 2
    min_probability: float = 0.15

    def _branches(self, distribution: Distribution) -> Distribution:
        kept = [entry for entry in distribution if entry[1] >= self.min_probability]
        limited = (kept or distribution)[: max(1, int(self.branch_limit))]
        return normalize_distribution(limited)

    def transitions(self, condition, queue):
        queue = [_coerce(c) for c in queue]
        if queue:
            head, rest = queue[0], queue[1:]
            tail = self._branches(generated_distribution(head, rest, self.harmony))
            return [
                ConditionTransition(head, tuple(rest) + (appended,), p)
                for appended, p in tail
            ]

        drawn = self._branches(generated_distribution(_coerce(condition), queue, self.harmony))
        result = []
        for next_condition, p in drawn:
            appended = most_likely(generated_distribution(next_condition, [], self.harmony))
            result.append(ConditionTransition(next_condition, (appended,), p))
        return result

    def visible_queue(self, condition, queue):
        return normalize_forecast_queue(condition, queue, self.harmony)


TransitionProvider = Callable[[CraftCondition, tuple[CraftCondition, ...]], Any]


@dataclass(slots=True)
class HostDriftPolicy:
    """Use the host's transition provider, falling back on error or empty output.

    The provider returns a sequence of mappings with `next_condition`
    (or `nextCondition`), `next_queue` (or `nextQueue`) and `probability`.
    """

    provider: TransitionProvider
    fallback: ConditionDriftPolicy = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.fallback is None:
            self.fallback = ForecastDriftPolicy()

    def transitions(self, condition, queue):
        try:
            provided = self.provider(condition, tuple(queue))
        except Exception as exc:  # host code, any failure falls back
            logger.warning("Condition transition provider failed, using fallback: %s", exc)
            return self.fallback.transitions(condition, queue)

        result = _normalize_provided(provided)
        if not result:
            logger.debug("Condition transition provider returned nothing usable")
            return self.fallback.transitions(condition, queue)
        return result

    def visible_queue(self, condition, queue):
        visible_queue = getattr(self.fallback, "visible_queue", None)
        if visible_queue is None:
            return tuple(queue)
        return visible_queue(condition, queue)


def _normalize_provided(provided: Any) -> list[ConditionTransition]:
    if not isinstance(provided, (list, tuple)):
        return []
    entries: list[tuple[CraftCondition, tuple[CraftCondition, ...], float]] = []
    for raw in provided:
        if isinstance(raw, ConditionTransition):
            raw = {
                "next_condition": raw.next_condition,
                "next_queue": raw.next_queue,
                "probability": raw.probability,
            }
        if not isinstance(raw, dict):
            continue
        probability = _clamp_probability(raw.get("probability", 0))
        if probability <= 0:
            continue
        nxt = raw.get("next_condition", raw.get("nextCondition"))
        queue = raw.get("next_queue", raw.get("nextQueue")) or []
        if not isinstance(queue, (list, tuple)):
            queue = []
        entries.append((_coerce(nxt), tuple(_coerce(c) for c in queue), probability))
    total = sum(p for _, _, p in entries)
    if total <= 0:
        return []
    return [ConditionTransition(c, q, p / total) for c, q, p in entries]


def normalize_forecast_queue(
    condition: CraftCondition | str | None,
    queue: Sequence[CraftCondition | str],
    harmony: float = 0.0,
    length: int = VISIBLE_QUEUE_LENGTH,
) -> tuple[CraftCondition, ...]:
    """Trim or extend the forecast to `length` with the most likely conditions."""
    length = max(0, int(length))
    current = _coerce(condition)
    filled = [_coerce(c) for c in queue][:length]
    while len(filled) < length:
        filled.append(most_likely(generated_distribution(current, filled, harmony)))
    return tuple(filled)

"""Error taxonomy for the advisor engine.

UnsupportedEffect and InvalidState are fatal to a recommendation.
ActionUnavailable only prunes branches; NativeCapabilityUnavailable only
triggers the local fallback.
"""

from __future__ import annotations

from enum import Enum


class AdvisorError(Exception):
    """Base class for every error the engine raises on purpose."""

    kind = "AdvisorError"


class UnsupportedEffect(AdvisorError):
    kind = "UnsupportedEffect"

    def __init__(self, effect_kind: str) -> None:
        super().__init__(f"Unsupported effect kind: {effect_kind}")
        self.effect_kind = effect_kind


class UnavailableReason(str, Enum):
    TERMINAL = "terminal"
    COOLDOWN = "cooldown"
    CONDITION = "condition"
    BUFF_REQUIREMENT = "buff_requirement"
    BUFF_COST = "buff_cost"
    POOL = "pool"
    STABILITY = "stability"
    TOXICITY = "toxicity"
    NATIVE = "native"


class ActionUnavailable(AdvisorError):
    kind = "ActionUnavailable"

    def __init__(self, technique_id: str, reason: UnavailableReason, details: str) -> None:
        super().__init__(f"{technique_id} unavailable ({reason.value}): {details}")
        self.technique_id = technique_id
        self.reason = reason
        self.details = details


class NativeCapabilityUnavailable(AdvisorError):
    kind = "NativeCapabilityUnavailable"

    def __init__(self, capability: str, details: str = "not provided by host") -> None:
        super().__init__(f"Native capability {capability}: {details}")
        self.capability = capability
        self.details = details


class InvalidState(AdvisorError):
    kind = "InvalidState"

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = list(problems)

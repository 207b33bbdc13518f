"""Read-only catalog of technique and buff definitions for a session."""

from __future__ import annotations

from dataclasses import dataclass, field

from craft_advisor.models.buff import Buff
from craft_advisor.models.technique import Technique


@dataclass(slots=True)
class Catalog:
    """Techniques in host declaration order plus buffs by id.

    Built once per session (or on catalog change) and never mutated by the
    engine; every search frame shares it.
    """

    techniques: tuple[Technique, ...] = ()
    buffs: dict[str, Buff] = field(default_factory=dict)
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.techniques = tuple(self.techniques)
        index: dict[str, int] = {}
        for i, technique in enumerate(self.techniques):
            if technique.technique_id in index:
                raise ValueError(f"Duplicate technique id: {technique.technique_id}")
            index[technique.technique_id] = i
        self._index = index

    @classmethod
    def build(cls, techniques: list[Technique], buffs: list[Buff] | None = None) -> Catalog:
        return cls(techniques=tuple(techniques), buffs={b.buff_id: b for b in buffs or []})

    def technique(self, technique_id: str) -> Technique:
        return self.techniques[self._index[technique_id]]

    def index_of(self, technique_id: str) -> int:
        return self._index[technique_id]

    def buff(self, buff_id: str) -> Buff | None:
        return self.buffs.get(buff_id)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class Actor:
    """An entity that accumulates derived effects."""

    ref: str
    name: str = ""


@dataclass
class DerivedEffect:
    """A source effect copy materialized on an actor."""

    id: str
    actor_ref: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return str(self.data.get("name", ""))

    @property
    def origin(self) -> str | None:
        return self.data.get("origin")

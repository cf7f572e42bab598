from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class SourceEffect:
    """A modifier definition carried intrinsically by an item."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_payload(self) -> Dict[str, Any]:
        """Return a detached copy of the effect data, without its identity."""
        payload = copy.deepcopy(self.data)
        payload.pop("_id", None)
        return payload


@dataclass(frozen=True)
class Item:
    """Any entity resolvable by reference. Read-only to the synchronizer."""

    ref: str
    name: str
    kind: str = "loot"
    img: str | None = None
    effects: Tuple[SourceEffect, ...] = ()

    @property
    def has_effects(self) -> bool:
        return len(self.effects) > 0

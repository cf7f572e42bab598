# armory/systems/interfaces.py
"""Collaborators the synchronizer consumes. Provided by the host."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Protocol

if TYPE_CHECKING:
    from armory.entities.components import Actor, DerivedEffect
    from armory.items.carrier import Carrier
    from armory.items.components import Item


class ReferenceResolver(Protocol):
    async def resolve_reference(self, ref: str) -> "Item":
        """Return the referenced item or raise ``ResolutionFailure``."""
        ...


class EffectStore(Protocol):
    async def create_effects(
        self, actor: "Actor", payloads: List[Dict[str, Any]]
    ) -> List["DerivedEffect"]:
        ...

    async def delete_effects(self, actor: "Actor", effect_ids: List[str]) -> None:
        ...

    async def get_effects(self, actor: "Actor") -> List["DerivedEffect"]:
        ...


class CarrierStore(Protocol):
    async def persist_carrier(self, carrier: "Carrier", patch: Dict[str, Any]) -> None:
        """Persist an ``attached``/``equipped`` patch for a carrier."""
        ...

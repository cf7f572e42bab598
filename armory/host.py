# armory/host.py
"""In-memory host backed by the item and entity registries.

Implements every collaborator the synchronizer consumes, so a full
attach/equip/detach cycle can run without a real document database.
"""

from typing import Any, Dict, List, Self

import structlog

from armory.entities.components import Actor, DerivedEffect
from armory.entities.registry import EntityRegistry
from armory.errors import ResolutionFailure
from armory.items.carrier import CARRIER_KINDS, Carrier, carrier_from_record
from armory.items.components import Item
from armory.items.registry import ItemRegistry

log = structlog.get_logger()


class RegistryHost:
    def __init__(self: Self, item_registry: ItemRegistry, entity_registry: EntityRegistry):
        self.item_registry = item_registry
        self.entity_registry = entity_registry

    # --- ReferenceResolver ---

    async def resolve_reference(self: Self, ref: str) -> Item:
        item = self.item_registry.get_item(ref) if ref else None
        if item is None:
            raise ResolutionFailure(ref)
        return item

    # --- EffectStore ---

    async def create_effects(
        self: Self, actor: Actor, payloads: List[Dict[str, Any]]
    ) -> List[DerivedEffect]:
        return self.entity_registry.add_effects(actor.ref, payloads)

    async def delete_effects(self: Self, actor: Actor, effect_ids: List[str]) -> None:
        self.entity_registry.remove_effects(actor.ref, effect_ids)

    async def get_effects(self: Self, actor: Actor) -> List[DerivedEffect]:
        return self.entity_registry.get_effects(actor.ref)

    # --- CarrierStore ---

    async def persist_carrier(self: Self, carrier: Carrier, patch: Dict[str, Any]) -> None:
        self.item_registry.update_carrier(carrier.ref, patch)

    # --- Loading ---

    def load_carrier(self: Self, ref: str) -> Carrier:
        """Load a carrier with its owning actor resolved once, here."""
        record = self.item_registry.get_record(ref)
        if record is None:
            raise ResolutionFailure(ref)
        if record["kind"] not in CARRIER_KINDS:
            raise ValueError(f"Item '{ref}' of kind '{record['kind']}' is not a carrier")
        owner = self.entity_registry.get_actor(record["owner_actor_ref"])
        if owner is None and record["owner_actor_ref"] is not None:
            log.warning(
                "Carrier owner not found", carrier=ref, owner=record["owner_actor_ref"]
            )
        return carrier_from_record(record, owner)

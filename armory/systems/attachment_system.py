# armory/systems/attachment_system.py

"""
Keeps the derived effects on an actor consistent with the attachments of the
carriers it owns.

For every carrier C owned by actor A, every reference R in ``C.attached`` and
every source effect S of the item at R, A holds exactly one effect tagged
``(C, R, S.id)`` while C is equipped, and none otherwise.

Each operation is a short sequence of awaited host calls. The engine holds no
locks: the host must deliver one gesture at a time per carrier and keep the
triggering control disabled until the operation finishes. ``detach`` always
sweeps matching effects, which heals drift left by missed events.
"""

from enum import Enum
from typing import Dict, Iterable, List, Self, Tuple

import structlog

from armory.config import AttachmentConfig
from armory.effects.provenance import (
    ProvenanceTag,
    collect_tags,
    matches_tag,
    read_tag,
    stamp_effect,
)
from armory.entities.components import Actor, DerivedEffect
from armory.errors import DuplicateAttachment, MissingOwner, ResolutionFailure
from armory.items.carrier import Carrier
from armory.items.components import Item
from armory.systems.interfaces import CarrierStore, EffectStore, ReferenceResolver

log = structlog.get_logger(__name__)


class LinkState(Enum):
    """Lifecycle of one (carrier, attached reference) pair."""

    DETACHED = "detached"
    LINKED_INACTIVE = "linked_inactive"
    LINKED_ACTIVE = "linked_active"


def link_state(carrier: Carrier, ref: str) -> LinkState:
    if not carrier.has_attachment(ref):
        return LinkState.DETACHED
    return LinkState.LINKED_ACTIVE if carrier.equipped else LinkState.LINKED_INACTIVE


class AttachmentSynchronizer:
    def __init__(
        self: Self,
        resolver: ReferenceResolver,
        effects: EffectStore,
        carriers: CarrierStore,
        config: AttachmentConfig | None = None,
    ):
        self.resolver = resolver
        self.effects = effects
        self.carriers = carriers
        self.config = config or AttachmentConfig()

    # --- Helper Functions ---

    def _owner(self: Self, carrier: Carrier) -> Actor | None:
        try:
            return carrier.require_owner()
        except MissingOwner:
            log.debug("Carrier has no owner, skipping effects", carrier=carrier.ref)
            return None

    async def _resolve(self: Self, ref: str) -> Item | None:
        try:
            return await self.resolver.resolve_reference(ref)
        except ResolutionFailure as e:
            log.warning("Could not resolve item reference", ref=ref, error=str(e))
            return None

    async def _persist(self: Self, carrier: Carrier, patch: Dict) -> None:
        """Persist first; the in-memory carrier only changes on success."""
        await self.carriers.persist_carrier(carrier, patch)
        for field_name, value in patch.items():
            setattr(carrier, field_name, value)

    async def _pending_payloads(
        self: Self,
        actor: Actor,
        carrier: Carrier,
        sources: Iterable[Tuple[str, Item]],
    ) -> List[Dict]:
        """Tagged copies of source effects not already on the actor."""
        present = collect_tags(await self.effects.get_effects(actor), self.config)
        payloads = []
        for item_ref, item in sources:
            for source_effect in item.effects:
                tag = ProvenanceTag(carrier.ref, item_ref, source_effect.id)
                if tag in present:
                    log.debug("Derived effect already present", **tag.to_record())
                    continue
                present.add(tag)
                payloads.append(
                    stamp_effect(source_effect, carrier.ref, item_ref, self.config)
                )
        return payloads

    async def _create_payloads(
        self: Self, actor: Actor, carrier: Carrier, payloads: List[Dict]
    ) -> List[DerivedEffect]:
        if not payloads:
            return []
        created = await self.effects.create_effects(actor, payloads)
        log.info(
            "Created attachment effects",
            actor=actor.ref,
            carrier=carrier.ref,
            count=len(created),
        )
        return created

    async def _create_missing(
        self: Self,
        actor: Actor,
        carrier: Carrier,
        sources: Iterable[Tuple[str, Item]],
    ) -> List[DerivedEffect]:
        """Batch-create tagged copies of source effects not already on the actor."""
        payloads = await self._pending_payloads(actor, carrier, sources)
        return await self._create_payloads(actor, carrier, payloads)

    async def _delete_matching(
        self: Self, actor: Actor, carrier_ref: str, item_ref: str | None = None
    ) -> int:
        """Batch-delete effects tagged with the carrier (and item, when given)."""
        effect_ids = [
            effect.id
            for effect in await self.effects.get_effects(actor)
            if matches_tag(effect.data, self.config, carrier_ref, item_ref)
        ]
        if not effect_ids:
            return 0
        await self.effects.delete_effects(actor, effect_ids)
        log.info(
            "Removed attachment effects",
            actor=actor.ref,
            carrier=carrier_ref,
            item=item_ref,
            count=len(effect_ids),
        )
        return len(effect_ids)

    async def _resolve_sources(
        self: Self, refs: Iterable[str]
    ) -> Tuple[List[Tuple[str, Item]], List[str]]:
        """Resolve references one by one; failures are skipped and reported."""
        resolved, unresolved = [], []
        for ref in refs:
            item = await self._resolve(ref)
            if item is None:
                unresolved.append(ref)
            else:
                resolved.append((ref, item))
        return resolved, unresolved

    # --- Main Attachment Actions ---

    async def attach(self: Self, carrier: Carrier, candidate_ref: str) -> List[DerivedEffect]:
        """Link ``candidate_ref`` to the carrier, propagating effects if equipped."""
        item = await self._resolve(candidate_ref)
        if item is None:
            log.info("Attach aborted", carrier=carrier.ref, ref=candidate_ref)
            return []

        if carrier.has_attachment(candidate_ref):
            log.warning(
                "Item already attached", carrier=carrier.ref, ref=candidate_ref
            )
            raise DuplicateAttachment(carrier.ref, candidate_ref, item.name)

        # Payloads must exist before the link is saved
        actor = None
        payloads: List[Dict] = []
        if carrier.equipped and item.has_effects:
            actor = self._owner(carrier)
            if actor is not None:
                payloads = await self._pending_payloads(
                    actor, carrier, [(candidate_ref, item)]
                )
        elif item.has_effects:
            log.debug(
                "Carrier not equipped, effects deferred",
                carrier=carrier.ref,
                ref=candidate_ref,
            )

        await self._persist(carrier, {"attached": [*carrier.attached, candidate_ref]})
        log.info("Item attached", carrier=carrier.ref, ref=candidate_ref)

        if actor is None:
            return []
        return await self._create_payloads(actor, carrier, payloads)

    async def detach(self: Self, carrier: Carrier, attached_ref: str) -> int:
        """Unlink ``attached_ref`` and sweep its effects. Safe to repeat."""
        remaining = [ref for ref in carrier.attached if ref != attached_ref]
        if len(remaining) != len(carrier.attached):
            await self._persist(carrier, {"attached": remaining})
            log.info("Item detached", carrier=carrier.ref, ref=attached_ref)
        else:
            log.debug("Item was not attached", carrier=carrier.ref, ref=attached_ref)

        # Unconditional: equipped bookkeeping is not trusted here
        actor = self._owner(carrier)
        if actor is None:
            return 0
        return await self._delete_matching(actor, carrier.ref, attached_ref)

    async def on_equip_change(self: Self, carrier: Carrier, new_equipped: bool) -> int:
        """Apply an equipped transition. Returns effects created or removed."""
        new_equipped = bool(new_equipped)
        if carrier.equipped != new_equipped:
            await self._persist(carrier, {"equipped": new_equipped})

        actor = self._owner(carrier)
        if actor is None or not carrier.attached:
            return 0

        if new_equipped:
            sources, unresolved = await self._resolve_sources(list(carrier.attached))
            if unresolved:
                log.warning(
                    "Skipped unresolved attachments on equip",
                    carrier=carrier.ref,
                    refs=unresolved,
                )
            created = await self._create_missing(actor, carrier, sources)
            return len(created)

        return await self._delete_matching(actor, carrier.ref)

    async def set_equipped(self: Self, carrier: Carrier, equipped: bool) -> int:
        """Field-edit entry point: only a real transition touches effects."""
        if carrier.equipped == bool(equipped):
            log.debug("Equipped flag unchanged", carrier=carrier.ref)
            return 0
        return await self.on_equip_change(carrier, equipped)

    async def reconcile(self: Self, carrier: Carrier) -> int:
        """
        Bring the carrier's effects back in line with its relation: drop
        orphans and duplicates, create anything missing. Effects of attached
        items that cannot be resolved are left alone. Returns the number of
        the carrier's effects present afterwards.
        """
        actor = self._owner(carrier)
        if actor is None:
            return 0

        sources: List[Tuple[str, Item]] = []
        unresolved: List[str] = []
        if carrier.equipped:
            sources, unresolved = await self._resolve_sources(list(carrier.attached))
        expected = {
            ProvenanceTag(carrier.ref, ref, source_effect.id)
            for ref, item in sources
            for source_effect in item.effects
        }

        kept: set[ProvenanceTag] = set()
        stale: List[str] = []
        for effect in await self.effects.get_effects(actor):
            if not matches_tag(effect.data, self.config, carrier.ref):
                continue
            tag = read_tag(effect.data, self.config)
            if tag in kept or (tag not in expected and tag.item_ref not in unresolved):
                stale.append(effect.id)
            else:
                kept.add(tag)

        if stale:
            await self.effects.delete_effects(actor, stale)
            log.info("Removed stale attachment effects", carrier=carrier.ref, count=len(stale))
        created = await self._create_missing(actor, carrier, sources)
        return len(kept) + len(created)

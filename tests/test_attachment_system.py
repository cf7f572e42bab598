import asyncio

import pytest

from armory.config import AttachmentConfig
from armory.effects.provenance import read_tag, stamp_effect
from armory.entities.registry import EntityRegistry
from armory.errors import DuplicateAttachment, PersistenceError
from armory.host import RegistryHost
from armory.items.registry import ItemRegistry
from armory.systems.attachment_system import (
    AttachmentSynchronizer,
    LinkState,
    link_state,
)

CONFIG = AttachmentConfig()

ITEM_TEMPLATES = {
    "leather_armor": {"name": "Leather Armor", "kind": "armor"},
    "longsword": {"name": "Longsword", "kind": "weapon"},
    "glow_ring": {
        "name": "Ring of Glow",
        "kind": "loot",
        "effects": [
            {"id": "glow", "name": "Glow", "changes": [{"key": "light", "value": 2}]}
        ],
    },
    "runed_stud": {
        "name": "Runed Stud",
        "kind": "loot",
        "effects": [{"id": "ward", "name": "Ward"}, {"id": "chill", "name": "Chill"}],
    },
    "plain_strap": {"name": "Plain Strap", "kind": "loot"},
    "legacy_charm": {
        "name": "Legacy Charm",
        "kind": "loot",
        "effects": [{"id": "old", "name": "Old", "flags": {"armory": "legacy"}}],
    },
}


class CountingHost(RegistryHost):
    """Registry host that records every batch call."""

    def __init__(self, item_registry, entity_registry):
        super().__init__(item_registry, entity_registry)
        self.create_batches = []
        self.delete_batches = []

    async def create_effects(self, actor, payloads):
        self.create_batches.append(len(payloads))
        return await super().create_effects(actor, payloads)

    async def delete_effects(self, actor, effect_ids):
        self.delete_batches.append(len(effect_ids))
        await super().delete_effects(actor, effect_ids)


def make_session(equipped=False, owner="Actor.hero", config=CONFIG):
    entities = EntityRegistry()
    entities.create_actor("Actor.hero", "Hero")
    items = ItemRegistry(ITEM_TEMPLATES)
    items.create_item(
        "leather_armor", item_ref="armor#1", owner_actor_ref=owner, equipped=equipped
    )
    items.create_item("longsword", item_ref="sword#4", owner_actor_ref=owner)
    items.create_item("glow_ring", item_ref="ring#9")
    items.create_item("runed_stud", item_ref="stud#2")
    items.create_item("plain_strap", item_ref="strap#3")
    host = CountingHost(items, entities)
    synchronizer = AttachmentSynchronizer(host, host, host, config)
    return host, synchronizer, host.load_carrier("armor#1")


def tags_on(host, actor_ref="Actor.hero", config=CONFIG):
    tags = []
    for effect in host.entity_registry.get_effects(actor_ref):
        tag = read_tag(effect.data, config)
        if tag is not None:
            tags.append((tag.carrier_ref, tag.item_ref, tag.original_effect_id))
    return sorted(tags)


def test_attach_unequipped_then_equip_then_detach():
    host, sync, armor = make_session()

    asyncio.run(sync.attach(armor, "ring#9"))
    assert armor.attached == ["ring#9"]
    assert host.item_registry.get_record("armor#1")["attached"] == ["ring#9"]
    assert tags_on(host) == []

    asyncio.run(sync.on_equip_change(armor, True))
    assert armor.equipped is True
    assert tags_on(host) == [("armor#1", "ring#9", "glow")]

    asyncio.run(sync.detach(armor, "ring#9"))
    assert armor.attached == []
    assert host.item_registry.get_record("armor#1")["attached"] == []
    assert tags_on(host) == []


def test_attach_twice_reports_duplicate():
    host, sync, armor = make_session(equipped=True)

    asyncio.run(sync.attach(armor, "ring#9"))
    with pytest.raises(DuplicateAttachment) as excinfo:
        asyncio.run(sync.attach(armor, "ring#9"))

    assert excinfo.value.item_name == "Ring of Glow"
    assert armor.attached == ["ring#9"]
    assert tags_on(host) == [("armor#1", "ring#9", "glow")]


def test_attach_appends_in_order():
    host, sync, armor = make_session()
    for ref in ("stud#2", "ring#9", "strap#3"):
        asyncio.run(sync.attach(armor, ref))
    assert armor.attached == ["stud#2", "ring#9", "strap#3"]


def test_attach_while_equipped_creates_effects_in_one_batch():
    host, sync, armor = make_session(equipped=True)

    created = asyncio.run(sync.attach(armor, "stud#2"))

    assert len(created) == 2
    assert host.create_batches == [2]
    assert tags_on(host) == [("armor#1", "stud#2", "chill"), ("armor#1", "stud#2", "ward")]


def test_attach_item_without_effects_creates_nothing():
    host, sync, armor = make_session(equipped=True)
    assert asyncio.run(sync.attach(armor, "strap#3")) == []
    assert armor.attached == ["strap#3"]
    assert host.create_batches == []


def test_attach_unresolvable_reference_is_ignored():
    host, sync, armor = make_session(equipped=True)

    assert asyncio.run(sync.attach(armor, "ring#missing")) == []
    assert armor.attached == []
    assert host.item_registry.get_record("armor#1")["attached"] == []


def test_attach_persist_failure_leaves_carrier_unchanged():
    host, sync, armor = make_session(equipped=True)
    host.item_registry.delete_item("armor#1")

    with pytest.raises(PersistenceError):
        asyncio.run(sync.attach(armor, "ring#9"))
    assert armor.attached == []
    assert tags_on(host) == []


def test_attach_with_legacy_flag_namespace_creates_effect():
    host, sync, armor = make_session(equipped=True)
    host.item_registry.create_item("legacy_charm", item_ref="charm#5")

    (effect,) = asyncio.run(sync.attach(armor, "charm#5"))

    assert armor.attached == ["charm#5"]
    assert host.item_registry.get_record("armor#1")["attached"] == ["charm#5"]
    assert effect.data["flags"]["armory"] == {
        "attachmentSource": {
            "carrierRef": "armor#1",
            "itemRef": "charm#5",
            "originalEffectId": "old",
        }
    }
    assert tags_on(host) == [("armor#1", "charm#5", "old")]


def test_attach_payload_failure_leaves_carrier_unchanged(monkeypatch):
    host, sync, armor = make_session(equipped=True)

    def broken_stamp(*args, **kwargs):
        raise RuntimeError("cannot copy effect")

    monkeypatch.setattr(
        "armory.systems.attachment_system.stamp_effect", broken_stamp
    )
    with pytest.raises(RuntimeError):
        asyncio.run(sync.attach(armor, "ring#9"))

    assert armor.attached == []
    assert host.item_registry.get_record("armor#1")["attached"] == []
    assert tags_on(host) == []


def test_derived_effect_copies_payload_and_origin():
    host, sync, armor = make_session(equipped=True)

    (effect,) = asyncio.run(sync.attach(armor, "ring#9"))

    assert effect.name == "Glow"
    assert effect.origin == "armor#1:ring#9"
    assert effect.data["changes"] == [{"key": "light", "value": 2}]
    assert "_id" not in effect.data
    assert effect.data["flags"]["armory"]["attachmentSource"] == {
        "carrierRef": "armor#1",
        "itemRef": "ring#9",
        "originalEffectId": "glow",
    }


def test_detach_absent_reference_sweeps_stray_effects():
    host, sync, armor = make_session()
    ring = host.item_registry.get_item("ring#9")
    stray = stamp_effect(ring.effects[0], "armor#1", "ring#9", CONFIG)
    host.entity_registry.add_effects("Actor.hero", [stray])

    removed = asyncio.run(sync.detach(armor, "ring#9"))

    assert removed == 1
    assert armor.attached == []
    assert tags_on(host) == []


def test_detach_twice_matches_single_detach():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))
    asyncio.run(sync.attach(armor, "stud#2"))

    assert asyncio.run(sync.detach(armor, "ring#9")) == 1
    state_after_first = (list(armor.attached), tags_on(host))
    assert asyncio.run(sync.detach(armor, "ring#9")) == 0

    assert (list(armor.attached), tags_on(host)) == state_after_first
    assert armor.attached == ["stud#2"]


def test_detach_removes_only_matching_item_effects():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))
    asyncio.run(sync.attach(armor, "stud#2"))

    asyncio.run(sync.detach(armor, "stud#2"))

    assert tags_on(host) == [("armor#1", "ring#9", "glow")]
    assert host.delete_batches == [2]


def test_detach_while_unequipped_still_sweeps():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))
    # Simulate a missed unequip: flag flipped without the effect cleanup
    armor.equipped = False

    assert asyncio.run(sync.detach(armor, "ring#9")) == 1
    assert tags_on(host) == []


def test_equip_round_trip_restores_zero_effects():
    host, sync, armor = make_session()
    asyncio.run(sync.attach(armor, "ring#9"))
    asyncio.run(sync.attach(armor, "stud#2"))
    asyncio.run(sync.attach(armor, "strap#3"))

    assert asyncio.run(sync.on_equip_change(armor, True)) == 3
    assert host.create_batches == [3]
    assert asyncio.run(sync.on_equip_change(armor, False)) == 3
    assert tags_on(host) == []
    assert host.item_registry.get_record("armor#1")["equipped"] is False


def test_unequip_leaves_other_carriers_effects():
    host, sync, armor = make_session(equipped=True)
    sword = host.load_carrier("sword#4")
    asyncio.run(sync.on_equip_change(sword, True))
    asyncio.run(sync.attach(armor, "ring#9"))
    asyncio.run(sync.attach(sword, "ring#9"))

    asyncio.run(sync.on_equip_change(armor, False))

    assert tags_on(host) == [("sword#4", "ring#9", "glow")]


def test_equip_skips_unresolvable_attachments():
    host, sync, armor = make_session()
    asyncio.run(sync.attach(armor, "stud#2"))
    asyncio.run(sync.attach(armor, "ring#9"))
    host.item_registry.delete_item("stud#2")

    created = asyncio.run(sync.on_equip_change(armor, True))

    assert created == 1
    assert tags_on(host) == [("armor#1", "ring#9", "glow")]


def test_repeated_equip_does_not_duplicate_effects():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))

    assert asyncio.run(sync.on_equip_change(armor, True)) == 0
    assert tags_on(host) == [("armor#1", "ring#9", "glow")]


def test_equip_with_no_attachments_only_updates_flag():
    host, sync, armor = make_session()

    assert asyncio.run(sync.on_equip_change(armor, True)) == 0
    assert armor.equipped is True
    assert host.item_registry.get_record("armor#1")["equipped"] is True
    assert host.create_batches == []


def test_missing_owner_updates_relation_only():
    host, sync, armor = make_session(owner=None)
    assert armor.owner_actor is None

    asyncio.run(sync.attach(armor, "ring#9"))
    assert asyncio.run(sync.on_equip_change(armor, True)) == 0
    assert armor.attached == ["ring#9"]
    assert armor.equipped is True

    assert asyncio.run(sync.detach(armor, "ring#9")) == 0
    assert armor.attached == []
    assert host.create_batches == []
    assert host.entity_registry.effects_df.height == 0


def test_set_equipped_only_acts_on_transition():
    host, sync, armor = make_session()
    asyncio.run(sync.attach(armor, "ring#9"))

    assert asyncio.run(sync.set_equipped(armor, False)) == 0
    assert asyncio.run(sync.set_equipped(armor, True)) == 1
    assert asyncio.run(sync.set_equipped(armor, True)) == 0
    assert host.create_batches == [1]
    assert asyncio.run(sync.set_equipped(armor, False)) == 1
    assert tags_on(host) == []


def test_link_state_follows_transitions():
    host, sync, armor = make_session()
    assert link_state(armor, "ring#9") is LinkState.DETACHED

    asyncio.run(sync.attach(armor, "ring#9"))
    assert link_state(armor, "ring#9") is LinkState.LINKED_INACTIVE

    asyncio.run(sync.on_equip_change(armor, True))
    assert link_state(armor, "ring#9") is LinkState.LINKED_ACTIVE

    asyncio.run(sync.on_equip_change(armor, False))
    assert link_state(armor, "ring#9") is LinkState.LINKED_INACTIVE

    asyncio.run(sync.on_equip_change(armor, True))
    asyncio.run(sync.detach(armor, "ring#9"))
    assert link_state(armor, "ring#9") is LinkState.DETACHED


def test_reconcile_removes_drift():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))
    asyncio.run(sync.attach(armor, "stud#2"))
    effects = host.entity_registry.get_effects("Actor.hero")
    glow_id = next(e.id for e in effects if e.name == "Glow")
    ward = next(e for e in effects if e.name == "Ward")
    host.entity_registry.remove_effects("Actor.hero", [glow_id])
    ring = host.item_registry.get_item("ring#9")
    orphan = stamp_effect(ring.effects[0], "armor#1", "gone#0", CONFIG)
    host.entity_registry.add_effects("Actor.hero", [orphan, dict(ward.data)])

    present = asyncio.run(sync.reconcile(armor))

    assert present == 3
    assert tags_on(host) == [
        ("armor#1", "ring#9", "glow"),
        ("armor#1", "stud#2", "chill"),
        ("armor#1", "stud#2", "ward"),
    ]


def test_reconcile_unequipped_clears_effects():
    host, sync, armor = make_session(equipped=True)
    asyncio.run(sync.attach(armor, "ring#9"))
    armor.equipped = False

    assert asyncio.run(sync.reconcile(armor)) == 0
    assert tags_on(host) == []


def test_custom_tag_location():
    config = AttachmentConfig(tag_namespace="custom", tag_key="src")
    host, sync, armor = make_session(equipped=True, config=config)

    (effect,) = asyncio.run(sync.attach(armor, "ring#9"))

    assert effect.data["flags"]["custom"]["src"]["itemRef"] == "ring#9"
    assert "armory" not in effect.data["flags"]
    assert asyncio.run(sync.detach(armor, "ring#9")) == 1

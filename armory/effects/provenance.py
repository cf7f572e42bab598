# armory/effects/provenance.py
"""Provenance tags linking a derived effect back to its source.

Each derived effect carries a flat record under
``flags[<tag_namespace>][<tag_key>]``::

    {"carrierRef": "...", "itemRef": "...", "originalEffectId": "..."}

so it can be found again with a plain equality filter. Everything else in
the payload is opaque and copied as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping

import structlog

if TYPE_CHECKING:
    from armory.config import AttachmentConfig
    from armory.items.components import SourceEffect

log = structlog.get_logger()


@dataclass(frozen=True)
class ProvenanceTag:
    carrier_ref: str
    item_ref: str
    original_effect_id: str

    def to_record(self) -> Dict[str, str]:
        return {
            "carrierRef": self.carrier_ref,
            "itemRef": self.item_ref,
            "originalEffectId": self.original_effect_id,
        }

    @classmethod
    def from_record(cls, record: Any) -> "ProvenanceTag | None":
        """Parse a stored record; malformed records yield ``None``."""
        if not isinstance(record, Mapping):
            return None
        values = (
            record.get("carrierRef"),
            record.get("itemRef"),
            record.get("originalEffectId"),
        )
        if not all(isinstance(v, str) and v for v in values):
            return None
        return cls(*values)


def effect_origin(carrier_ref: str, item_ref: str) -> str:
    return f"{carrier_ref}:{item_ref}"


def stamp_effect(
    source_effect: "SourceEffect",
    carrier_ref: str,
    item_ref: str,
    config: "AttachmentConfig",
) -> Dict[str, Any]:
    """Copy a source effect into a payload tagged with its provenance."""
    payload = source_effect.to_payload()
    tag = ProvenanceTag(carrier_ref, item_ref, source_effect.id)

    flags = payload.get("flags")
    if not isinstance(flags, Mapping):
        if flags:
            log.debug("Replacing non-mapping flags", effect=source_effect.id)
        flags = {}
    flags = dict(flags)
    namespaced = flags.get(config.tag_namespace)
    if not isinstance(namespaced, Mapping):
        if namespaced:
            log.debug(
                "Replacing non-mapping flag namespace",
                effect=source_effect.id,
                namespace=config.tag_namespace,
            )
        namespaced = {}
    namespaced = dict(namespaced)
    namespaced[config.tag_key] = tag.to_record()
    flags[config.tag_namespace] = namespaced

    payload["flags"] = flags
    payload["origin"] = effect_origin(carrier_ref, item_ref)
    return payload


def read_tag(effect_data: Mapping[str, Any], config: "AttachmentConfig") -> ProvenanceTag | None:
    """Return the provenance tag stored on an effect payload, if any."""
    flags = effect_data.get("flags")
    if not isinstance(flags, Mapping):
        return None
    namespaced = flags.get(config.tag_namespace)
    if not isinstance(namespaced, Mapping):
        return None
    return ProvenanceTag.from_record(namespaced.get(config.tag_key))


def matches_tag(
    effect_data: Mapping[str, Any],
    config: "AttachmentConfig",
    carrier_ref: str,
    item_ref: str | None = None,
) -> bool:
    """Equality filter on the provenance tag. ``item_ref=None`` matches any item."""
    tag = read_tag(effect_data, config)
    if tag is None or tag.carrier_ref != carrier_ref:
        return False
    return item_ref is None or tag.item_ref == item_ref


def collect_tags(
    effects: Iterable[Any], config: "AttachmentConfig"
) -> set[ProvenanceTag]:
    """Tags present on a collection of derived effects."""
    tags = set()
    for effect in effects:
        tag = read_tag(effect.data, config)
        if tag is not None:
            tags.add(tag)
    return tags

"""Provenance tagging for derived effects."""

from .provenance import (
    ProvenanceTag,
    collect_tags,
    effect_origin,
    matches_tag,
    read_tag,
    stamp_effect,
)

__all__ = [
    "ProvenanceTag",
    "collect_tags",
    "effect_origin",
    "matches_tag",
    "read_tag",
    "stamp_effect",
]

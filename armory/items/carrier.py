# armory/items/carrier.py
"""Carrier capability and the concrete carrier kinds.

A carrier is an item that can host attachments. Ownership is resolved once,
when the carrier is loaded from the registry, and stored on
``owner_actor``; nothing downstream walks ownership chains.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Protocol, runtime_checkable

from armory.entities.components import Actor
from armory.errors import MissingOwner

CarrierKind = Literal["armor", "weapon"]
CARRIER_KINDS: tuple[str, ...] = CarrierKind.__args__


@runtime_checkable
class Carrier(Protocol):
    """Anything that can hold attachments and be equipped by an actor."""

    ref: str
    name: str
    attached: List[str]
    equipped: bool
    owner_actor: Actor | None

    @property
    def kind(self) -> str: ...

    def has_attachment(self, ref: str) -> bool:
        return ref in self.attached

    def require_owner(self) -> Actor:
        """Return the owning actor or raise ``MissingOwner``."""
        if self.owner_actor is None:
            raise MissingOwner(self.ref)
        return self.owner_actor


@dataclass
class Armor(Carrier):
    ref: str
    name: str
    attached: List[str] = field(default_factory=list)
    equipped: bool = False
    owner_actor: Actor | None = None
    img: str | None = None
    base_score: int = 0

    kind: ClassVar[str] = "armor"


@dataclass
class Weapon(Carrier):
    ref: str
    name: str
    attached: List[str] = field(default_factory=list)
    equipped: bool = False
    owner_actor: Actor | None = None
    img: str | None = None
    burden: str = "oneHanded"

    kind: ClassVar[str] = "weapon"


CARRIER_TYPES: Dict[str, type] = {"armor": Armor, "weapon": Weapon}


def carrier_from_record(record: Mapping[str, Any], owner: Actor | None) -> Carrier:
    """Build the concrete carrier for a registry row."""
    kind = record.get("kind")
    carrier_cls = CARRIER_TYPES.get(kind)
    if carrier_cls is None:
        raise ValueError(f"Item kind '{kind}' cannot carry attachments")

    attached: List[str] = []
    for ref in record.get("attached") or []:
        # Nullable references are dropped, duplicates collapse to first position
        if ref and ref not in attached:
            attached.append(ref)

    attributes = record.get("attributes") or {}
    extra: Dict[str, Any] = {}
    if kind == "armor" and "base_score" in attributes:
        extra["base_score"] = int(attributes["base_score"])
    if kind == "weapon" and "burden" in attributes:
        extra["burden"] = str(attributes["burden"])

    return carrier_cls(
        ref=record["item_ref"],
        name=record.get("name") or record["item_ref"],
        attached=attached,
        equipped=bool(record.get("equipped")),
        owner_actor=owner,
        img=record.get("img"),
        **extra,
    )

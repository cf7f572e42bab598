# armory/items/registry.py
import json
import uuid
from typing import Any, Dict, List, Self

import polars as pl
import structlog

from armory.constants import CARRIER_PATCH_FIELDS
from armory.errors import PersistenceError
from armory.items.carrier import CARRIER_KINDS
from armory.items.components import Item, SourceEffect

log = structlog.get_logger()

# Define the schema for the item DataFrame
ITEM_SCHEMA: dict[str, pl.DataType] = {
    "item_ref": pl.Utf8,
    "is_active": pl.Boolean,
    "template_id": pl.Utf8,
    "kind": pl.Utf8,
    "name": pl.Utf8,
    "img": pl.Utf8,
    # Nullable. Actor that owns the item directly
    "owner_actor_ref": pl.Utf8,
    # --- Carrier State (null for non-carriers) ---
    "equipped": pl.Boolean,
    "attached": pl.List(pl.Utf8),
    # --- Static data, JSON encoded ---
    "effects": pl.Utf8,
    "attributes": pl.Utf8,
}


def _source_effects_from_template(template: dict, template_id: str) -> List[dict]:
    """Normalize template effect definitions, assigning ids where missing."""
    effects = template.get("effects") or []
    if not isinstance(effects, list):
        log.warning("Template effects must be a list", template_id=template_id)
        return []
    normalized = []
    for index, effect in enumerate(effects):
        if not isinstance(effect, dict):
            log.warning(
                "Skipping malformed effect definition",
                template_id=template_id,
                index=index,
            )
            continue
        data = dict(effect)
        effect_id = data.pop("id", None) or data.pop("_id", None)
        data["_id"] = str(effect_id or f"{template_id}.{index}")
        normalized.append(data)
    return normalized


class ItemRegistry:
    def __init__(self: Self, item_templates: Dict[str, dict]):
        log.info("Initializing ItemRegistry")
        self.item_templates: Dict[str, dict] = item_templates
        self.items_df: pl.DataFrame = pl.DataFrame(schema=ITEM_SCHEMA)
        log.debug("ItemRegistry initialized", templates_loaded=len(item_templates))

    def create_item(
        self: Self,
        template_id: str,
        item_ref: str | None = None,
        owner_actor_ref: str | None = None,
        equipped: bool = False,
        attached: List[str] | None = None,
    ) -> str | None:
        """Creates a new item instance from a template and returns its reference."""
        template = self.item_templates.get(template_id)
        if not template:
            log.warning("Unknown item template", template_id=template_id)
            return None

        new_ref = item_ref or f"Item.{uuid.uuid4().hex[:16]}"
        log_context = {"template": template_id, "item_ref": new_ref}

        if self._count_active(new_ref) > 0:
            log.error("Item reference already in use", **log_context)
            return None

        kind = str(template.get("kind", "loot"))
        is_carrier = kind in CARRIER_KINDS
        if not is_carrier and (equipped or attached):
            log.error("Only carriers can be equipped or hold attachments", **log_context)
            return None

        item_data = {
            "item_ref": new_ref,
            "is_active": True,
            "template_id": template_id,
            "kind": kind,
            "name": template.get("name", template_id),
            "img": template.get("img"),
            "owner_actor_ref": owner_actor_ref,
            "equipped": bool(equipped) if is_carrier else None,
            "attached": list(dict.fromkeys(attached or [])) if is_carrier else None,
            "effects": json.dumps(_source_effects_from_template(template, template_id)),
            "attributes": json.dumps(template.get("attributes") or {}),
        }

        try:
            new_item_df = pl.DataFrame(
                {k: [v] for k, v in item_data.items()}, schema=ITEM_SCHEMA
            )
            self.items_df = pl.concat([self.items_df, new_item_df], how="vertical")
        except Exception as e:
            log.error(
                "Failed to create item DataFrame",
                error=str(e),
                exc_info=True,
                **log_context,
            )
            return None

        log.info("Item created successfully", kind=kind, **log_context)
        return new_ref

    def _active_mask(self: Self, item_ref: str) -> pl.Expr:
        return (pl.col("item_ref") == item_ref) & pl.col("is_active")

    def _count_active(self: Self, item_ref: str) -> int:
        return self.items_df.filter(self._active_mask(item_ref)).height

    def get_record(self: Self, item_ref: str) -> Dict[str, Any] | None:
        """Returns the raw row for an active item, with JSON columns decoded."""
        rows = self.items_df.filter(self._active_mask(item_ref))
        if rows.height == 0:
            return None
        record = rows.row(0, named=True)
        record["effects"] = json.loads(record["effects"] or "[]")
        record["attributes"] = json.loads(record["attributes"] or "{}")
        record["attached"] = list(record["attached"] or [])
        return record

    def get_item(self: Self, item_ref: str) -> Item | None:
        """Returns the read-only view of an active item."""
        record = self.get_record(item_ref)
        if record is None:
            return None
        effects = tuple(
            SourceEffect(id=data["_id"], data=data) for data in record["effects"]
        )
        return Item(
            ref=record["item_ref"],
            name=record["name"],
            kind=record["kind"],
            img=record["img"],
            effects=effects,
        )

    def get_carrier_refs(self: Self, owner_actor_ref: str | None = None) -> List[str]:
        """Returns references of active carriers, optionally filtered by owner."""
        condition = pl.col("kind").is_in(list(CARRIER_KINDS)) & pl.col("is_active")
        if owner_actor_ref is not None:
            condition = condition & (pl.col("owner_actor_ref") == owner_actor_ref)
        return self.items_df.filter(condition).get_column("item_ref").to_list()

    def update_carrier(self: Self, item_ref: str, patch: Dict[str, Any]) -> None:
        """Persist ``attached``/``equipped`` changes for a carrier."""
        log_context = {"item_ref": item_ref, "fields": sorted(patch)}
        illegal = set(patch) - CARRIER_PATCH_FIELDS
        if illegal:
            log.warning("Rejected carrier patch with protected fields", **log_context)
            raise PersistenceError(
                f"Cannot persist fields {sorted(illegal)} on carrier '{item_ref}'"
            )

        record = self.get_record(item_ref)
        if record is None or record["kind"] not in CARRIER_KINDS:
            log.warning("Carrier patch for unknown item", **log_context)
            raise PersistenceError(f"'{item_ref}' is not an active carrier")

        if "attached" in patch:
            attached = list(patch["attached"])
            if any(not isinstance(ref, str) or not ref for ref in attached):
                raise PersistenceError("Attached references must be non-empty strings")
            if len(set(attached)) != len(attached):
                raise PersistenceError("Attached references must be unique")
            record["attached"] = attached
        if "equipped" in patch:
            record["equipped"] = bool(patch["equipped"])

        record["effects"] = json.dumps(record["effects"])
        record["attributes"] = json.dumps(record["attributes"])

        indexed = self.items_df.with_row_index("_row")
        row_index = indexed.filter(self._active_mask(item_ref)).get_column("_row").item()
        new_row = pl.DataFrame({k: [v] for k, v in record.items()}, schema=ITEM_SCHEMA)
        self.items_df = pl.concat(
            [
                self.items_df.slice(0, row_index),
                new_row,
                self.items_df.slice(row_index + 1),
            ],
            how="vertical",
        )
        log.debug("Carrier persisted", **log_context)

    def delete_item(self: Self, item_ref: str) -> bool:
        """Marks an item as inactive (soft delete)."""
        log_context = {"item_ref": item_ref}
        item_mask = self._active_mask(item_ref)
        if self.items_df.filter(item_mask).height == 0:
            log.debug("Item already inactive or does not exist", **log_context)
            return False

        self.items_df = self.items_df.with_columns(
            pl.when(item_mask)
            .then(pl.lit(False))
            .otherwise(pl.col("is_active"))
            .alias("is_active")
        )
        log.info("Item marked as inactive", **log_context)
        return True

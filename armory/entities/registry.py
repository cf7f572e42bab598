# armory/entities/registry.py
import json
from typing import Any, Dict, List, Self

import polars as pl
import structlog

from armory.entities.components import Actor, DerivedEffect

log = structlog.get_logger()

ACTOR_SCHEMA: dict[str, pl.DataType] = {
    "actor_ref": pl.Utf8,
    "is_active": pl.Boolean,
    "name": pl.Utf8,
}

# Derived effects materialized on actors. Payloads are opaque, JSON encoded.
EFFECT_SCHEMA: dict[str, pl.DataType] = {
    "effect_id": pl.Utf8,
    "actor_ref": pl.Utf8,
    "is_active": pl.Boolean,
    "data": pl.Utf8,
}


class EntityRegistry:
    def __init__(self: Self):
        log.info("Initializing EntityRegistry")
        self.actors_df: pl.DataFrame = pl.DataFrame(schema=ACTOR_SCHEMA)
        self.effects_df: pl.DataFrame = pl.DataFrame(schema=EFFECT_SCHEMA)
        self._next_effect_id: int = 0

    def _get_next_effect_id(self: Self) -> str:
        current_id = self._next_effect_id
        self._next_effect_id += 1
        return f"effect-{current_id:06d}"

    def create_actor(self: Self, actor_ref: str, name: str = "") -> Actor | None:
        if self.get_actor(actor_ref) is not None:
            log.error("Actor reference already in use", actor_ref=actor_ref)
            return None
        new_actor_df = pl.DataFrame(
            {"actor_ref": [actor_ref], "is_active": [True], "name": [name or actor_ref]},
            schema=ACTOR_SCHEMA,
        )
        self.actors_df = pl.concat([self.actors_df, new_actor_df], how="vertical")
        log.info("Actor created", actor_ref=actor_ref, name=name)
        return Actor(ref=actor_ref, name=name or actor_ref)

    def get_actor(self: Self, actor_ref: str | None) -> Actor | None:
        if actor_ref is None:
            return None
        rows = self.actors_df.filter(
            (pl.col("actor_ref") == actor_ref) & pl.col("is_active")
        )
        if rows.height == 0:
            return None
        row = rows.row(0, named=True)
        return Actor(ref=row["actor_ref"], name=row["name"])

    # --- Derived effects ---

    def add_effects(
        self: Self, actor_ref: str, payloads: List[Dict[str, Any]]
    ) -> List[DerivedEffect]:
        """Materializes payloads on an actor in one step. All or nothing."""
        if self.get_actor(actor_ref) is None:
            log.warning("Cannot add effects to unknown actor", actor_ref=actor_ref)
            raise KeyError(f"Unknown actor '{actor_ref}'")
        if not payloads:
            return []

        # Encode everything before touching the table
        encoded = [json.dumps(payload) for payload in payloads]
        effect_ids = [self._get_next_effect_id() for _ in encoded]

        new_effects_df = pl.DataFrame(
            {
                "effect_id": effect_ids,
                "actor_ref": [actor_ref] * len(effect_ids),
                "is_active": [True] * len(effect_ids),
                "data": encoded,
            },
            schema=EFFECT_SCHEMA,
        )
        self.effects_df = pl.concat([self.effects_df, new_effects_df], how="vertical")
        log.debug("Effects added", actor_ref=actor_ref, count=len(effect_ids))
        return [
            DerivedEffect(id=effect_id, actor_ref=actor_ref, data=json.loads(data))
            for effect_id, data in zip(effect_ids, encoded)
        ]

    def remove_effects(self: Self, actor_ref: str, effect_ids: List[str]) -> int:
        """Soft deletes effects by id. Unknown ids are ignored."""
        if not effect_ids:
            return 0
        effect_mask = (
            (pl.col("actor_ref") == actor_ref)
            & pl.col("effect_id").is_in(list(effect_ids))
            & pl.col("is_active")
        )
        removed = self.effects_df.filter(effect_mask).height
        self.effects_df = self.effects_df.with_columns(
            pl.when(effect_mask)
            .then(pl.lit(False))
            .otherwise(pl.col("is_active"))
            .alias("is_active")
        )
        log.debug("Effects removed", actor_ref=actor_ref, count=removed)
        return removed

    def get_effects(self: Self, actor_ref: str) -> List[DerivedEffect]:
        """Returns the active effects on an actor, in creation order."""
        rows = self.effects_df.filter(
            (pl.col("actor_ref") == actor_ref) & pl.col("is_active")
        )
        return [
            DerivedEffect(
                id=row["effect_id"], actor_ref=row["actor_ref"], data=json.loads(row["data"])
            )
            for row in rows.iter_rows(named=True)
        ]

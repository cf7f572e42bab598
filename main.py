# main.py
import argparse
import asyncio
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List

import structlog
import yaml

from armory.config import AttachmentConfig, load_yaml_config
from armory.effects.provenance import read_tag
from armory.entities.registry import EntityRegistry
from armory.host import RegistryHost
from armory.items.carrier import Carrier
from armory.items.registry import ItemRegistry
from armory.sheets.attachment_sheet import ATTACHMENTS_PART, AttachmentSheet
from armory.systems.attachment_system import AttachmentSynchronizer
from armory.utils.logging_utils import setup_logging

# --- Paths relative to this script's location ---
SCRIPT_DIR = Path(__file__).parent.resolve()
CONFIG_DIR = SCRIPT_DIR / "config"

CONFIG_FILE_NAME = "config.yaml"
ITEMS_FILE_NAME = "items.yaml"
SCENARIO_FILE_NAME = "scenario.yaml"
# --- End Paths ---

log = structlog.get_logger()

SCENARIO_OPS = ("attach", "detach", "equip", "unequip", "reconcile", "context")


@dataclass
class Configs:
    main: Dict[str, Any]
    item_templates: Dict[str, dict]
    scenario: Dict[str, Any]
    attachments: AttachmentConfig = field(default_factory=AttachmentConfig)


@dataclass
class Session:
    host: RegistryHost
    synchronizer: AttachmentSynchronizer
    sheets: Dict[str, AttachmentSheet] = field(default_factory=dict)


def load_configs(
    config_dir: Path = CONFIG_DIR, scenario_path: Path | None = None
) -> Configs:
    main_config = load_yaml_config(config_dir / CONFIG_FILE_NAME, "Main")
    item_templates = load_yaml_config(config_dir / ITEMS_FILE_NAME, "Items").get(
        "templates", {}
    )
    scenario = load_yaml_config(
        scenario_path or config_dir / SCENARIO_FILE_NAME, "Scenario"
    )
    return Configs(
        main=main_config,
        item_templates=item_templates,
        scenario=scenario,
        attachments=AttachmentConfig.from_mapping(main_config.get("attachments")),
    )


def init_session(configs: Configs) -> Session:
    """Build registries from the scenario and wire the synchronizer to them."""
    entity_registry = EntityRegistry()
    for actor in configs.scenario.get("actors", []):
        entity_registry.create_actor(actor["ref"], actor.get("name", ""))

    item_registry = ItemRegistry(configs.item_templates)
    for item in configs.scenario.get("items", []):
        created = item_registry.create_item(
            template_id=item["template"],
            item_ref=item["ref"],
            owner_actor_ref=item.get("owner"),
            equipped=item.get("equipped", False),
        )
        if created is None:
            raise ValueError(f"Scenario item '{item['ref']}' could not be created")

    host = RegistryHost(item_registry, entity_registry)
    synchronizer = AttachmentSynchronizer(
        resolver=host, effects=host, carriers=host, config=configs.attachments
    )
    session = Session(host=host, synchronizer=synchronizer)
    for carrier_ref in item_registry.get_carrier_refs():
        session.sheets[carrier_ref] = AttachmentSheet(
            host.load_carrier(carrier_ref), synchronizer, host, configs.attachments
        )
    log.debug("Session initialized", carriers=sorted(session.sheets))
    return session


def _sheet_for(session: Session, carrier_ref: str) -> AttachmentSheet:
    sheet = session.sheets.get(carrier_ref)
    if sheet is None:
        raise ValueError(f"Unknown carrier '{carrier_ref}' in scenario")
    return sheet


async def _effect_tags(session: Session, carrier: Carrier) -> List[Dict[str, str]]:
    if carrier.owner_actor is None:
        return []
    tags = []
    for effect in await session.host.get_effects(carrier.owner_actor):
        tag = read_tag(effect.data, session.synchronizer.config)
        if tag is not None and tag.carrier_ref == carrier.ref:
            tags.append(tag.to_record())
    return tags


async def run_scenario(configs: Configs, session: Session) -> List[Dict[str, Any]]:
    """Execute the scripted steps, returning a snapshot after each one."""
    results = []
    for index, step in enumerate(configs.scenario.get("steps", [])):
        op = step.get("op")
        if op not in SCENARIO_OPS:
            raise ValueError(f"Unknown scenario op '{op}' at step {index}")
        sheet = _sheet_for(session, step["carrier"])
        carrier = sheet.carrier
        messages_before = len(sheet.message_log)
        snapshot: Dict[str, Any] = {"step": index, "op": op, "carrier": carrier.ref}

        if op == "attach":
            await sheet.on_drop({"type": "Item", "uuid": step["item"]})
        elif op == "detach":
            await sheet.remove_attachment(step["item"])
        elif op in ("equip", "unequip"):
            await session.synchronizer.set_equipped(carrier, op == "equip")
        elif op == "reconcile":
            snapshot["reconciled"] = await session.synchronizer.reconcile(carrier)
        elif op == "context":
            context = await sheet.prepare_part_context(ATTACHMENTS_PART)
            snapshot["attachedItems"] = context["attachedItems"]

        snapshot["attached"] = list(carrier.attached)
        snapshot["equipped"] = carrier.equipped
        snapshot["effects"] = await _effect_tags(session, carrier)
        snapshot["messages"] = [text for text, _ in sheet.message_log[messages_before:]]
        log.info(
            "Scenario step complete",
            step=index,
            op=op,
            attached=snapshot["attached"],
            equipped=snapshot["equipped"],
            effects=len(snapshot["effects"]),
        )
        results.append(snapshot)
    return results


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a scripted attach/equip/detach scenario."
    )
    parser.add_argument(
        "--config-dir", type=Path, default=CONFIG_DIR, help="Directory with YAML configs."
    )
    parser.add_argument(
        "--scenario", type=Path, default=None, help="Scenario YAML (default: config dir)."
    )
    parser.add_argument(
        "--log-level", default=None, help="Override the configured log level."
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit JSON log lines."
    )
    args = parser.parse_args(argv)

    try:
        configs = load_configs(args.config_dir, args.scenario)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    attachments = configs.attachments
    if args.log_level:
        attachments = replace(attachments, log_level=args.log_level)
    setup_logging(attachments.level, args.json_logs)

    session = init_session(configs)
    results = asyncio.run(run_scenario(configs, session))
    for snapshot in results:
        print(
            f"[{snapshot['step']}] {snapshot['op']:<9} {snapshot['carrier']}: "
            f"attached={snapshot['attached']} equipped={snapshot['equipped']} "
            f"effects={len(snapshot['effects'])}"
        )
        for message in snapshot["messages"]:
            print(f"    ! {message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

# armory/sheets/attachment_sheet.py
"""
Controller behind a carrier's attachments tab.

Translates sheet gestures (a drop onto the attachments section, a click on
a remove button, an edit of the equipped field) into synchronizer calls and
collects user-facing notices in ``message_log``. Rendering is left to the
host.
"""

from typing import Any, Dict, List, Literal, Mapping, Self, Tuple

import structlog

from armory.config import AttachmentConfig
from armory.errors import DuplicateAttachment
from armory.items.carrier import Carrier
from armory.systems.attachment_context import build_attachment_context
from armory.systems.attachment_system import AttachmentSynchronizer
from armory.systems.interfaces import ReferenceResolver
from armory.utils.logging_utils import operation_context

log = structlog.get_logger(__name__)

MessageLevel = Literal["info", "warning"]

ATTACHMENTS_PART = "attachments"


class AttachmentSheet:
    def __init__(
        self: Self,
        carrier: Carrier,
        synchronizer: AttachmentSynchronizer,
        resolver: ReferenceResolver,
        config: AttachmentConfig | None = None,
    ):
        self.carrier = carrier
        self.synchronizer = synchronizer
        self.resolver = resolver
        self.config = config or synchronizer.config
        self.message_log: List[Tuple[str, MessageLevel]] = []

    def add_message(self: Self, text: str, level: MessageLevel = "info") -> None:
        self.message_log.append((text, level))
        log.debug("Message added", message=text, level=level)

    async def on_drop(self: Self, drop_data: Mapping[str, Any]) -> bool:
        """Handle an item dropped on the attachments section."""
        if drop_data.get("type") != "Item" or not drop_data.get("uuid"):
            log.debug("Ignoring non-item drop", data_type=drop_data.get("type"))
            return False
        ref = str(drop_data["uuid"])
        with operation_context("attach", self.carrier.ref):
            try:
                await self.synchronizer.attach(self.carrier, ref)
            except DuplicateAttachment as e:
                self.add_message(
                    f"{e.item_name or ref} is already attached to this {self.carrier.kind}.",
                    "warning",
                )
                return False
        return self.carrier.has_attachment(ref)

    async def remove_attachment(self: Self, ref: str) -> None:
        with operation_context("detach", self.carrier.ref):
            await self.synchronizer.detach(self.carrier, ref)

    async def toggle_equipped(self: Self) -> bool:
        with operation_context("equip", self.carrier.ref):
            await self.synchronizer.set_equipped(self.carrier, not self.carrier.equipped)
        return self.carrier.equipped

    async def prepare_part_context(self: Self, part_id: str) -> Dict[str, Any]:
        context: Dict[str, Any] = {"carrier": self.carrier.ref, "kind": self.carrier.kind}
        if part_id == ATTACHMENTS_PART:
            entries = await build_attachment_context(
                self.carrier, self.resolver, self.config
            )
            context["attachedItems"] = [entry.to_dict() for entry in entries]
        return context

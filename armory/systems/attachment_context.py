# armory/systems/attachment_context.py
"""Read-only projection of a carrier's attachments for display."""

import asyncio
from dataclasses import dataclass
from typing import Dict, List

import structlog

from armory.config import AttachmentConfig
from armory.items.carrier import Carrier
from armory.systems.interfaces import ReferenceResolver

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AttachmentEntry:
    reference: str
    display_name: str
    display_icon: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "reference": self.reference,
            "displayName": self.display_name,
            "displayIcon": self.display_icon,
        }


async def _entry_for(
    ref: str, resolver: ReferenceResolver, config: AttachmentConfig
) -> AttachmentEntry:
    try:
        item = await resolver.resolve_reference(ref)
    except Exception as e:
        # Any failure degrades to the fallback entry; never propagated
        log.debug("Attachment display fallback", ref=ref, error=str(e))
        return AttachmentEntry(ref, config.fallback_name, config.fallback_icon)
    return AttachmentEntry(
        reference=ref,
        display_name=item.name or config.fallback_name,
        display_icon=item.img or config.fallback_icon,
    )


async def build_attachment_context(
    carrier: Carrier,
    resolver: ReferenceResolver,
    config: AttachmentConfig | None = None,
) -> List[AttachmentEntry]:
    """One entry per attached reference, in attach order."""
    config = config or AttachmentConfig()
    refs = list(carrier.attached or [])
    if not refs:
        return []
    return list(await asyncio.gather(*(_entry_for(ref, resolver, config) for ref in refs)))

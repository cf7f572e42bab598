"""Shared defaults for the attachment subsystem."""

# Provenance flag location on derived effects
DEFAULT_TAG_NAMESPACE: str = "armory"
DEFAULT_TAG_KEY: str = "attachmentSource"

# Display fallbacks for unresolvable attachments
FALLBACK_ITEM_NAME: str = "Unknown Item"
FALLBACK_ITEM_ICON: str = "icons/svg/item-bag.svg"

# Carrier fields the synchronizer is allowed to persist
CARRIER_PATCH_FIELDS: frozenset[str] = frozenset({"attached", "equipped"})

__all__ = [
    "DEFAULT_TAG_NAMESPACE",
    "DEFAULT_TAG_KEY",
    "FALLBACK_ITEM_NAME",
    "FALLBACK_ITEM_ICON",
    "CARRIER_PATCH_FIELDS",
]

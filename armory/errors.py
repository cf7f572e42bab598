# armory/errors.py
"""Error taxonomy for the attachment subsystem.

Only ``DuplicateAttachment`` is expected to reach a caller. Resolution and
ownership problems are handled where they occur and logged.
"""

from __future__ import annotations


class AttachmentError(Exception):
    """Base class for every attachment subsystem error."""


class ResolutionFailure(AttachmentError, LookupError):
    """An item reference does not resolve to a live item."""

    def __init__(self, ref: str):
        super().__init__(f"Item reference '{ref}' could not be resolved")
        self.ref = ref


class DuplicateAttachment(AttachmentError):
    """The candidate item is already linked to the carrier."""

    def __init__(self, carrier_ref: str, item_ref: str, item_name: str | None = None):
        super().__init__(
            f"'{item_name or item_ref}' is already attached to carrier '{carrier_ref}'"
        )
        self.carrier_ref = carrier_ref
        self.item_ref = item_ref
        self.item_name = item_name


class MissingOwner(AttachmentError):
    """The carrier has no owning actor; effects cannot be propagated."""

    def __init__(self, carrier_ref: str):
        super().__init__(f"Carrier '{carrier_ref}' has no owning actor")
        self.carrier_ref = carrier_ref


class PersistenceError(AttachmentError):
    """The host refused to persist a carrier patch."""

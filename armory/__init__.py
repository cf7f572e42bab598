"""Attachment and derived-effect synchronization for equippable carriers."""

from armory.config import AttachmentConfig
from armory.errors import (
    AttachmentError,
    DuplicateAttachment,
    MissingOwner,
    PersistenceError,
    ResolutionFailure,
)
from armory.systems.attachment_context import build_attachment_context
from armory.systems.attachment_system import AttachmentSynchronizer, LinkState

__all__ = [
    "AttachmentConfig",
    "AttachmentError",
    "AttachmentSynchronizer",
    "DuplicateAttachment",
    "LinkState",
    "MissingOwner",
    "PersistenceError",
    "ResolutionFailure",
    "build_attachment_context",
]

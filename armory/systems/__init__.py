"""Attachment synchronization and read-only projections."""

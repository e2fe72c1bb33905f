"""Privacy helpers for the AI processing service."""

from .contact import ContactDetailFilter, ContactFinding, ContactKind, preview

__all__ = ["ContactDetailFilter", "ContactFinding", "ContactKind", "preview"]

"""Mapping helpers shared by audited models."""

from entity_audit.core.database.base import AuditIgnoreMixin, AuditMixin


__all__ = [
    "AuditIgnoreMixin",
    "AuditMixin",
]

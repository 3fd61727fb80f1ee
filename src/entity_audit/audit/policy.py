"""Inclusion policy deciding which entity types are audited."""

from entity_audit.audit.schema import EntitySchema
from entity_audit.config import AuditMode


class InclusionPolicy:
    """Apply an AuditMode to entity descriptors.

    A flag on the registered descriptor wins over the ``__audit__``
    class marker set by AuditMixin / AuditIgnoreMixin.
    """

    def __init__(self, mode: AuditMode = AuditMode.OPT_OUT) -> None:
        self.mode = AuditMode(mode)

    def includes(self, schema: EntitySchema) -> bool:
        """Check whether instances of a type should be audited.

        Args:
            schema: Descriptor of the entity type

        Returns:
            True if the entity type is audited under the current mode
        """
        if self.mode is AuditMode.ALL:
            return True

        flag = schema.audit
        if flag is None:
            flag = getattr(schema.entity_type, "__audit__", None)

        if self.mode is AuditMode.OPT_IN:
            return flag is True
        return flag is not False

    def __repr__(self) -> str:
        return f"<InclusionPolicy(mode={self.mode.value})>"

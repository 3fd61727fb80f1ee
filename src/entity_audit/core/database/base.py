"""Marker mixins controlling audit inclusion for mapped classes."""


class AuditMixin:
    """Marker mixin to opt a model into auditing.

    Required in ``opt_in`` mode; harmless in the other modes. The
    inclusion policy in entity_audit.audit.policy checks the
    ``__audit__`` attribute.

    Example:
        class Invoice(Base, AuditMixin):
            __tablename__ = "invoices"
            id: Mapped[int] = mapped_column(primary_key=True)
    """

    # Marker attribute checked by the inclusion policy
    __audit__: bool = True


class AuditIgnoreMixin:
    """Marker mixin to opt a model out of auditing.

    Honoured in ``opt_out`` mode. ``all`` mode audits the model anyway.
    """

    __audit__: bool = False

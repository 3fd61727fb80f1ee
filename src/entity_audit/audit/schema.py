"""Per-entity-type descriptors built once from SQLAlchemy mapper metadata.

The change capture code never reflects over mapped classes on its own.
It asks the SchemaRegistry for an EntitySchema and works from the
column list, primary key and validation rules recorded there.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from sqlalchemy import Column, String, event, inspect
from sqlalchemy.orm import Mapper

from entity_audit.core.errors import MappingError


ValidationRule = Callable[[Any], Iterable[str] | None] | type[BaseModel]


@dataclass(frozen=True)
class ColumnSpec:
    """A mapped column attribute.

    Attributes:
        key: Attribute name on the mapped class
        name: Column name in the table
        nullable: Whether the column accepts NULL
        has_default: Whether a client or server default fills the column
        max_length: Declared length for string columns
        primary_key: Whether the column is part of the primary key
    """

    key: str
    name: str
    nullable: bool = True
    has_default: bool = False
    max_length: int | None = None
    primary_key: bool = False


@dataclass(frozen=True)
class EntitySchema:
    """Audit descriptor for one mapped class.

    Attributes:
        entity_type: The mapped class
        table: Table name reported on change records
        columns: Column attributes in mapper order
        primary_key: Attribute keys of the primary key, in declaration order
        rules: Validation rules run against each captured instance
        audit: Explicit inclusion flag, None to defer to class markers
    """

    entity_type: type
    table: str
    columns: tuple[ColumnSpec, ...]
    primary_key: tuple[str, ...] = ()
    rules: tuple[ValidationRule, ...] = ()
    audit: bool | None = None
    _by_key: dict[str, ColumnSpec] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._by_key.update({column.key: column for column in self.columns})

    @property
    def name(self) -> str:
        """Class name of the mapped type."""
        return self.entity_type.__name__

    def column(self, key: str) -> ColumnSpec:
        """Get the column spec for an attribute key.

        Raises:
            MappingError: If the attribute is not a mapped column
        """
        try:
            return self._by_key[key]
        except KeyError:
            raise MappingError(
                f"'{key}' is not a mapped column of {self.name}",
                entity_type=self.name,
                attribute=key,
            ) from None


def _column_spec(key: str, column: Column[Any]) -> ColumnSpec:
    max_length = column.type.length if isinstance(column.type, String) else None
    return ColumnSpec(
        key=key,
        name=column.name,
        nullable=bool(column.nullable),
        has_default=column.default is not None or column.server_default is not None,
        max_length=max_length,
        primary_key=column.primary_key,
    )


def _load_previous_value(
    target: Any, value: Any, oldvalue: Any, initiator: Any
) -> None:
    """Set listener registered with active_history=True.

    Its presence makes SQLAlchemy load the committed value of an expired
    attribute before overwriting it, so update history always carries the
    original value, also with expire_on_commit=True.
    """


def _track_history(entity_type: type, key: str) -> None:
    attribute = getattr(entity_type, key)
    if not event.contains(attribute, "set", _load_previous_value):
        event.listen(attribute, "set", _load_previous_value, active_history=True)


def _mapper_for(entity_type: type) -> Mapper[Any]:
    mapper = inspect(entity_type, raiseerr=False)
    if not isinstance(mapper, Mapper):
        raise MappingError(
            f"{entity_type.__name__} is not a mapped class",
            entity_type=entity_type.__name__,
        )
    return mapper


class SchemaRegistry:
    """Registry of EntitySchema descriptors keyed by mapped class.

    Register models at startup with register() or register_all(). Mapped
    classes that were never registered are described on first use and
    inherit rules and the audit flag from their nearest registered base.
    """

    def __init__(self) -> None:
        self._schemas: dict[type, EntitySchema] = {}

    def __contains__(self, entity_type: type) -> bool:
        return entity_type in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def register(
        self,
        entity_type: type,
        *,
        table: str | None = None,
        primary_key: Sequence[str] | None = None,
        rules: Iterable[ValidationRule] = (),
        audit: bool | None = None,
    ) -> EntitySchema:
        """Build and store the descriptor for a mapped class.

        Args:
            entity_type: Mapped class to describe
            table: Override for the reported table name
            primary_key: Attribute keys to treat as the key; () for keyless
            rules: Validation rules for instances of this class
            audit: Explicit inclusion flag (overrides class markers)

        Returns:
            The registered descriptor

        Raises:
            MappingError: If the class is not mapped or the key names an
                unknown attribute
        """
        schema = self._build(
            entity_type,
            table=table,
            primary_key=primary_key,
            rules=tuple(rules),
            audit=audit,
        )
        self._schemas[entity_type] = schema
        return schema

    def register_all(self, base: Any) -> list[EntitySchema]:
        """Register every class mapped by a declarative base or registry.

        Classes already registered keep their descriptor.

        Args:
            base: A DeclarativeBase subclass or a sqlalchemy.orm.registry

        Returns:
            Descriptors for all mapped classes of the base
        """
        mapper_registry = getattr(base, "registry", base)
        schemas = []
        for mapper in mapper_registry.mappers:
            entity_type = mapper.class_
            if entity_type not in self._schemas:
                self.register(entity_type)
            schemas.append(self._schemas[entity_type])
        return schemas

    def get(self, entity_type: type) -> EntitySchema:
        """Get the descriptor for a mapped class, describing it if needed.

        Raises:
            MappingError: If the class is not mapped
        """
        schema = self._schemas.get(entity_type)
        if schema is None:
            inherited = self._inherited(entity_type)
            schema = self._build(
                entity_type,
                table=None,
                primary_key=None,
                rules=inherited.rules if inherited else (),
                audit=inherited.audit if inherited else None,
            )
            self._schemas[entity_type] = schema
        return schema

    def _inherited(self, entity_type: type) -> EntitySchema | None:
        for base in entity_type.__mro__[1:]:
            if base in self._schemas:
                return self._schemas[base]
        return None

    def _build(
        self,
        entity_type: type,
        *,
        table: str | None,
        primary_key: Sequence[str] | None,
        rules: tuple[ValidationRule, ...],
        audit: bool | None,
    ) -> EntitySchema:
        mapper = _mapper_for(entity_type)

        columns = []
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            # column_property() expressions have no table column to audit
            if isinstance(column, Column):
                columns.append(_column_spec(prop.key, column))
                _track_history(entity_type, prop.key)

        if primary_key is None:
            key_attrs = tuple(
                mapper.get_property_by_column(column).key
                for column in mapper.primary_key
            )
        else:
            key_attrs = tuple(primary_key)

        known = {column.key for column in columns}
        for key in key_attrs:
            if key not in known:
                raise MappingError(
                    f"Primary key attribute '{key}' is not a mapped column "
                    f"of {entity_type.__name__}",
                    entity_type=entity_type.__name__,
                    attribute=key,
                )

        local_table = mapper.local_table
        return EntitySchema(
            entity_type=entity_type,
            table=table or getattr(local_table, "name", None) or entity_type.__name__,
            columns=tuple(columns),
            primary_key=key_attrs,
            rules=rules,
            audit=audit,
        )

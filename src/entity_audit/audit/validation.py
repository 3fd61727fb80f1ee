"""Entity validation recorded on change records.

Validation is informational: a failing entity is still persisted and
still audited, with ``valid=False`` and the failure messages attached.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import pydantic
import structlog

from entity_audit.audit.schema import EntitySchema, ValidationRule
from entity_audit.audit.tracking import EntityState, TrackedEntry


log = structlog.get_logger()


@runtime_checkable
class ValidatableEntity(Protocol):
    """Entity that validates itself.

    Example:
        class Order(Base):
            def validate_entity(self) -> list[str]:
                if self.quantity <= 0:
                    return ["quantity must be positive"]
                return []
    """

    def validate_entity(self) -> Iterable[str] | None: ...


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one entity."""

    valid: bool
    messages: tuple[str, ...] = ()

    @classmethod
    def from_messages(cls, messages: Iterable[str]) -> "ValidationOutcome":
        collected = tuple(messages)
        return cls(valid=not collected, messages=collected)


def _format_pydantic_error(error: Mapping[str, Any]) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ()))
    msg = error.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def column_constraint_messages(
    schema: EntitySchema,
    values: Mapping[str, Any],
) -> list[str]:
    """Check captured values against the constraints declared on the mapping.

    Args:
        schema: Descriptor of the entity type
        values: Column name -> value snapshot of the entity

    Returns:
        Messages for missing required values and over-long strings
    """
    messages = []
    for column in schema.columns:
        value = values.get(column.name)
        if value is None:
            if not column.nullable and not column.has_default and not column.primary_key:
                messages.append(f"{column.name} is required")
            continue
        if (
            column.max_length is not None
            and isinstance(value, str)
            and len(value) > column.max_length
        ):
            messages.append(
                f"{column.name} must be at most {column.max_length} characters"
            )
    return messages


class EntityValidator:
    """Run declared validation rules against captured entities.

    Rules run in this order: column constraints from the mapping, rules
    registered on the descriptor, then the entity's own validate_entity().
    """

    def __init__(self, check_column_constraints: bool = True) -> None:
        self.check_column_constraints = check_column_constraints

    def validate(
        self,
        entry: TrackedEntry,
        values: Mapping[str, Any],
    ) -> ValidationOutcome:
        """Validate one tracked entity.

        Args:
            entry: Tracked entry to validate
            values: Column snapshot already captured for the entry

        Returns:
            Outcome with the ordered failure messages
        """
        messages: list[str] = []

        # Deleted rows are gone regardless of what their columns hold
        if self.check_column_constraints and entry.state is not EntityState.DELETED:
            messages.extend(column_constraint_messages(entry.schema, values))

        for rule in entry.schema.rules:
            messages.extend(self._run_rule(rule, entry))

        if isinstance(entry.instance, ValidatableEntity):
            messages.extend(self._run_rule(type(entry.instance).validate_entity, entry))

        return ValidationOutcome.from_messages(messages)

    def _run_rule(self, rule: ValidationRule, entry: TrackedEntry) -> list[str]:
        if isinstance(rule, type) and issubclass(rule, pydantic.BaseModel):
            try:
                rule.model_validate(entry.instance, from_attributes=True)
            except pydantic.ValidationError as e:
                return [_format_pydantic_error(error) for error in e.errors()]
            return []

        try:
            result = rule(entry.instance)
        except ValueError as e:
            return [str(e)]
        except Exception as e:
            log.warning(
                "audit_validation_rule_failed",
                entity_type=entry.schema.name,
                rule=getattr(rule, "__qualname__", repr(rule)),
                error=str(e),
            )
            return [f"validation rule {getattr(rule, '__name__', rule)!s} failed: {e}"]

        if result is None:
            return []
        if isinstance(result, str):
            return [result]
        return [str(message) for message in result]

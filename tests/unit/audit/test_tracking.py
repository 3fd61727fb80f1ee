"""Tests for change enumeration."""

import pytest

from entity_audit.audit.models import MutationKind
from entity_audit.audit.policy import InclusionPolicy
from entity_audit.audit.tracking import EntityState, enumerate_changes
from entity_audit.config import AuditMode
from tests.models import Customer, Invoice, SessionLog


class TestEntityState:
    """Tests for EntityState.action."""

    def test_actions(self):
        """Test the mutation kind recorded for each auditable state."""
        assert EntityState.ADDED.action is MutationKind.INSERT
        assert EntityState.MODIFIED.action is MutationKind.UPDATE
        assert EntityState.DELETED.action is MutationKind.DELETE

    def test_unchanged_has_no_action(self):
        """Test that unchanged entities have no mutation kind."""
        with pytest.raises(ValueError):
            EntityState.UNCHANGED.action  # noqa: B018


class TestEnumerateChanges:
    """Tests for enumerate_changes."""

    def test_empty_unit_of_work(self, session, registry):
        """Test that a clean session yields no entries."""
        assert enumerate_changes(session, InclusionPolicy(), registry) == []

    def test_classifies_pending_changes(self, session, registry):
        """Test that new, modified and deleted instances are classified."""
        kept = Customer(name="Ada", status="active")
        gone = Customer(name="Bob", status="active")
        session.add_all([kept, gone])
        session.commit()

        kept.email = "ada@example.com"
        session.delete(gone)
        added = Customer(name="Cy", status="active")
        session.add(added)

        entries = enumerate_changes(session, InclusionPolicy(), registry)

        assert [(entry.instance, entry.state) for entry in entries] == [
            (added, EntityState.ADDED),
            (kept, EntityState.MODIFIED),
            (gone, EntityState.DELETED),
        ]
        assert all(entry.schema is registry.get(Customer) for entry in entries)

    def test_dirty_without_net_change_is_skipped(self, session, registry):
        """Test that setting an attribute to its current value is not a change."""
        customer = Customer(name="Ada", status="active")
        session.add(customer)
        session.commit()

        customer.name = "Ada"

        assert customer in session.dirty
        assert enumerate_changes(session, InclusionPolicy(), registry) == []

    def test_policy_filters_entity_types(self, session, registry):
        """Test that excluded entity types are skipped."""
        session.add_all(
            [
                Customer(name="Ada", status="active"),
                Invoice(total=10),
                SessionLog(message="login"),
            ]
        )

        opt_out = enumerate_changes(session, InclusionPolicy(AuditMode.OPT_OUT), registry)
        opt_in = enumerate_changes(session, InclusionPolicy(AuditMode.OPT_IN), registry)

        assert {type(entry.instance) for entry in opt_out} == {Customer, Invoice}
        assert {type(entry.instance) for entry in opt_in} == {Invoice}

    def test_does_not_flush(self, session, registry):
        """Test that enumeration leaves the unit of work untouched."""
        customer = Customer(name="Ada", status="active")
        session.add(customer)

        enumerate_changes(session, InclusionPolicy(), registry)

        assert customer in session.new
        assert customer.id is None

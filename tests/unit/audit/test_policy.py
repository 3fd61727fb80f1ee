"""Tests for the audit inclusion policy."""

import pytest

from entity_audit.audit.policy import InclusionPolicy
from entity_audit.audit.schema import SchemaRegistry
from entity_audit.config import AuditMode
from tests.models import Customer, Invoice, SessionLog


@pytest.fixture
def schemas():
    """Descriptors for an unmarked, an opted-in and an opted-out model."""
    registry = SchemaRegistry()
    return {
        "plain": registry.get(Customer),
        "opt_in": registry.get(Invoice),
        "opt_out": registry.get(SessionLog),
    }


class TestInclusionPolicy:
    """Tests for InclusionPolicy.includes."""

    def test_all_mode_includes_everything(self, schemas):
        """Test that all mode ignores markers."""
        policy = InclusionPolicy(AuditMode.ALL)
        assert all(policy.includes(schema) for schema in schemas.values())

    def test_opt_in_mode(self, schemas):
        """Test that opt_in mode only includes marked models."""
        policy = InclusionPolicy(AuditMode.OPT_IN)

        assert policy.includes(schemas["opt_in"]) is True
        assert policy.includes(schemas["plain"]) is False
        assert policy.includes(schemas["opt_out"]) is False

    def test_opt_out_mode(self, schemas):
        """Test that opt_out mode excludes only ignored models."""
        policy = InclusionPolicy(AuditMode.OPT_OUT)

        assert policy.includes(schemas["plain"]) is True
        assert policy.includes(schemas["opt_in"]) is True
        assert policy.includes(schemas["opt_out"]) is False

    def test_registry_flag_overrides_marker(self):
        """Test that a registered flag wins over the class marker."""
        registry = SchemaRegistry()
        ignored_invoice = registry.register(Invoice, audit=False)
        included_log = registry.register(SessionLog, audit=True)
        included_customer = registry.register(Customer, audit=True)

        opt_in = InclusionPolicy(AuditMode.OPT_IN)
        opt_out = InclusionPolicy(AuditMode.OPT_OUT)

        assert opt_in.includes(ignored_invoice) is False
        assert opt_in.includes(included_customer) is True
        assert opt_out.includes(included_log) is True

    def test_mode_from_string(self):
        """Test that the mode can be given by value."""
        assert InclusionPolicy("opt_in").mode is AuditMode.OPT_IN

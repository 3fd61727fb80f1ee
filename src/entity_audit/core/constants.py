"""Package-wide constants.

This module defines constants used throughout the package
to avoid magic strings and ensure consistency.
"""

# Keys stored in Session.info
SESSION_BUFFER_KEY = "entity_audit.buffer"
SESSION_COMMITTED_KEY = "entity_audit.committed"

# Event defaults
DEFAULT_EVENT_TYPE = "{database}"

# Correlation backends
CORRELATION_AUTO = "auto"
CORRELATION_NONE = "none"

# Isolation level that implies no transaction is ever active
AUTOCOMMIT_ISOLATION = "AUTOCOMMIT"

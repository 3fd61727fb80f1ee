"""Core infrastructure: configuration helpers, errors, logging, markers."""

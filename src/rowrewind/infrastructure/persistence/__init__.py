"""Persistence: database sessions, schema reflection and change log tables."""

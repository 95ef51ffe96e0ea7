"""
scalar-store Test Suite.

This package contains:
- unit/: Unit tests (no database)
- integration/: Integration tests (SQLite in a temporary directory)
"""

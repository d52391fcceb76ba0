"""
Stockroom Test Suite.

This package contains:
- unit/: Unit tests (pure functions, in-memory backend)
- integration/: Integration tests (repositories and client over the in-memory backend)
"""

"""
Shared fixtures for the Stockroom test suite.
"""

import itertools

import pytest

from sdk.stockroom_sdk.audit import AuditLogger
from sdk.stockroom_sdk.backend.memory import InMemoryBackend
from sdk.stockroom_sdk.config import Settings
from sdk.stockroom_sdk.kinds import LOGS, PRODUCTS, STORES
from sdk.stockroom_sdk.repository import EntityRepository, StoreLocks


@pytest.fixture
def settings():
    """Default settings."""
    return Settings()


@pytest.fixture
def backend():
    """Fresh in-memory backend with readable sequential ids."""
    counter = itertools.count(1)
    return InMemoryBackend(id_factory=lambda: f"doc{next(counter)}")


@pytest.fixture
def audit(backend, settings):
    """Audit logger bound to the backend."""
    return AuditLogger(backend, settings)


@pytest.fixture
def locks():
    """Lock map shared by the repositories of one test."""
    return StoreLocks()


@pytest.fixture
def stores(backend, audit, settings, locks):
    """Store repository."""
    return EntityRepository(backend, STORES, audit=audit, settings=settings, locks=locks)


@pytest.fixture
def products(backend, audit, settings, locks):
    """Product repository."""
    return EntityRepository(backend, PRODUCTS, audit=audit, settings=settings, locks=locks)


@pytest.fixture
def logs(backend, audit, settings, locks):
    """Log repository (read-only)."""
    return EntityRepository(backend, LOGS, audit=audit, settings=settings, locks=locks)

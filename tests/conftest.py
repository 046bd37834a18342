"""
Shared pytest fixtures for the CoreSend test suite.
"""

import pytest

from coresend_core.identity import derive_identity
from coresend_core.session import SessionStore

from tests.vectors import ABANDON_PHRASE


@pytest.fixture
def phrase():
    return ABANDON_PHRASE


@pytest.fixture
def identity0():
    """Inbox 0 of the test phrase."""
    return derive_identity(ABANDON_PHRASE, 0)


@pytest.fixture
def identity1():
    return derive_identity(ABANDON_PHRASE, 1)


@pytest.fixture
def store():
    """Unlocked session holding inbox 0."""
    return SessionStore.unlock(ABANDON_PHRASE)


@pytest.fixture
def empty_store():
    """Session with a phrase loaded but no inboxes yet."""
    return SessionStore(ABANDON_PHRASE)
